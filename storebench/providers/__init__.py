"""Provider registry.

Providers are looked up by string identifier and their modules are imported
only when first requested, so a missing cloud SDK affects that provider alone.
"""

from importlib import import_module

import typing as t
from loguru import logger
from pydantic import BaseModel, ConfigDict

from storebench.errors import ProviderNotInstalledError, UnknownProviderError

from ._base import (
    CopyResult,
    DeleteResult,
    DownloadResult,
    HealthStatus,
    ListPage,
    ObjectMetadata,
    ProviderCapability,
    ProviderInfo,
    ProviderMetadata,
    SignedUrl,
    StorageProvider,
    UploadResult,
)

__all__ = [
    "ConfigSource",
    "CopyResult",
    "DeleteResult",
    "DownloadResult",
    "HealthStatus",
    "ListPage",
    "ObjectMetadata",
    "ProviderCapability",
    "ProviderEntry",
    "ProviderInfo",
    "ProviderMetadata",
    "SignedUrl",
    "StorageProvider",
    "UploadResult",
    "available_providers",
    "create_and_initialize",
    "create_provider",
    "get_provider_class",
    "get_provider_entry",
    "provider_from_config",
    "provider_registry",
]


class ProviderEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    module: str
    class_name: str = "Storage"
    aliases: tuple[str, ...] = ()


provider_registry: list[ProviderEntry] = [
    ProviderEntry(name="aws", module="storebench.providers.s3", aliases=("s3",)),
    ProviderEntry(name="gcp", module="storebench.providers.gcs", aliases=("gcs",)),
    ProviderEntry(name="azure", module="storebench.providers.azure"),
    ProviderEntry(name="minio", module="storebench.providers.minio"),
    ProviderEntry(name="local", module="storebench.providers.local"),
    ProviderEntry(name="memory", module="storebench.providers.memory"),
]


class ConfigSource(t.Protocol):
    def validate_provider(self, name: str) -> bool: ...

    def get_provider(self, name: str) -> dict[str, t.Any]: ...


def available_providers() -> list[str]:
    return [entry.name for entry in provider_registry]


def get_provider_entry(name: str) -> ProviderEntry:
    lookup = name.lower()
    for entry in provider_registry:
        if lookup == entry.name or lookup in entry.aliases:
            return entry
    raise UnknownProviderError(name, available_providers())


def get_provider_class(name: str) -> type[StorageProvider]:
    entry = get_provider_entry(name)
    try:
        module = import_module(entry.module)
    except ImportError as e:
        msg = (
            f"Provider '{entry.name}' is not installed: {e}. "
            f"Install the packages it requires to use it."
        )
        raise ProviderNotInstalledError(msg, provider=entry.name) from e
    return getattr(module, entry.class_name)


def create_provider(name: str, config: t.Any) -> StorageProvider:
    provider_class = get_provider_class(name)
    logger.debug(f"Creating {provider_class.name} provider")
    return provider_class(config)


async def create_and_initialize(name: str, config: t.Any) -> StorageProvider:
    provider = create_provider(name, config)
    await provider.initialize()
    return provider


async def provider_from_config(
    name: str, config_source: ConfigSource
) -> StorageProvider:
    name = get_provider_entry(name).name
    config_source.validate_provider(name)
    return await create_and_initialize(name, config_source.get_provider(name))
