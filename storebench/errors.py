"""Error types shared by providers, the registry and the configuration source.

Every provider raises the same exception classes regardless of the backend
SDK underneath, so callers can tell "absent" from "failed" without knowing
which vendor client is in play.
"""

import builtins

from typing import Any


class StorebenchError(Exception):
    """Base exception for storebench."""


class ConfigurationError(StorebenchError):
    """Base exception for configuration-related errors."""

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.provider = provider


class ConfigNotFoundError(ConfigurationError):
    """Raised when a provider has no entry in the configuration."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"Provider '{provider}' not found in configuration",
            provider=provider,
        )


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""


class UnknownProviderError(ConfigurationError):
    """Raised when a provider identifier is not registered."""

    def __init__(self, provider: str, available: list[str]) -> None:
        self.available = available
        super().__init__(
            f"Unknown storage provider: {provider}. "
            f"Available providers: {', '.join(available)}",
            provider=provider,
        )


class ProviderNotInstalledError(ConfigurationError):
    """Raised when the packages a provider needs cannot be imported."""


class StorageError(StorebenchError):
    """Base exception for failures raised by storage providers."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.key = key


class ConnectionError(StorageError, builtins.ConnectionError):  # noqa: A001
    """Backend unreachable or credentials rejected."""


class NotFoundError(StorageError):
    """Object, bucket or container does not exist."""

    @classmethod
    def for_key(cls, key: str, provider: str | None = None) -> "NotFoundError":
        return cls(f"Object '{key}' not found", provider=provider, key=key)


class OperationError(StorageError):
    """Backend rejected a read or write for any other reason."""

    @classmethod
    def wrap(
        cls,
        operation: str,
        error: BaseException,
        provider: str | None = None,
        key: str | None = None,
    ) -> "OperationError":
        label = provider or "storage"
        return cls(f"{label} {operation} failed: {error}", provider=provider, key=key)


class PreconditionError(StorebenchError):
    """A suite test ran without the state an earlier test should have left."""


def describe_validation_error(error: Any) -> str:
    """Flatten a pydantic ``ValidationError`` into one readable line."""
    try:
        parts = [
            f"{'.'.join(str(p) for p in item['loc']) or 'config'}: {item['msg']}"
            for item in error.errors()
        ]
    except (AttributeError, KeyError, TypeError):
        return str(error)
    return "; ".join(parts)
