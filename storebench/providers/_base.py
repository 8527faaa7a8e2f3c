import mimetypes
import random
import string
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Mapping
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path

import typing as t
from anyio import Path as AsyncPath
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storebench.errors import ConfigValidationError, describe_validation_error

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_LIST_LIMIT = 1000
DEFAULT_SIGNED_URL_EXPIRY = 3600

Payload = bytes | bytearray | memoryview | str | Path | AsyncPath


class ProviderCapability(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    LIST = "list"
    DELETE = "delete"
    METADATA = "metadata"
    SIGNED_URLS = "signed_urls"
    COPY = "copy"
    ENCRYPTION = "server_side_encryption"


CORE_CAPABILITIES = [
    ProviderCapability.UPLOAD,
    ProviderCapability.DOWNLOAD,
    ProviderCapability.LIST,
    ProviderCapability.DELETE,
    ProviderCapability.METADATA,
    ProviderCapability.SIGNED_URLS,
    ProviderCapability.COPY,
]


class ProviderMetadata(BaseModel):
    name: str
    provider: str
    version: str = "1.0.0"
    description: str | None = None
    settings_class: str = "StorageSettings"
    capabilities: list[ProviderCapability] = Field(default_factory=list)
    required_packages: list[str] = Field(default_factory=list)
    config_example: dict[str, t.Any] | None = None


class StorageBaseSettings(BaseModel):
    """Connection parameters common to every provider.

    Each provider module subclasses this as ``StorageSettings`` and adds its
    own credentials and bucket fields.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)


class ObjectMetadata(BaseModel):
    key: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None
    content_type: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    storage_class: str | None = None


class ListPage(BaseModel):
    objects: list[ObjectMetadata] = Field(default_factory=list)
    is_truncated: bool = False
    continuation_token: str | None = None


class UploadResult(BaseModel):
    key: str
    location: str
    etag: str | None = None
    size: int
    elapsed_ms: float


class DownloadResult(BaseModel):
    key: str
    destination_path: str
    size: int
    elapsed_ms: float
    metadata: dict[str, str] = Field(default_factory=dict)


class DeleteResult(BaseModel):
    key: str
    deleted: bool


class CopyResult(BaseModel):
    source_key: str
    destination_key: str
    etag: str | None = None


class SignedUrl(BaseModel):
    url: str
    expires_at: datetime
    method: str = "GET"


class HealthStatus(BaseModel):
    status: t.Literal["healthy", "unhealthy"]
    provider: str
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ProviderInfo(BaseModel):
    name: str
    title: str
    version: str
    capabilities: list[ProviderCapability]
    details: dict[str, t.Any] = Field(default_factory=dict)


def validate_key(key: t.Any) -> str:
    if not isinstance(key, str) or not key:
        msg = f"Object key must be a non-empty string, got {key!r}"
        raise ValueError(msg)
    return key


def validate_limit(limit: int) -> int:
    if limit < 1:
        msg = f"List limit must be a positive integer, got {limit}"
        raise ValueError(msg)
    return limit


def guess_content_type(source: Payload | None, content_type: str | None) -> str:
    if content_type:
        return content_type
    if isinstance(source, Path | AsyncPath):
        guessed, _ = mimetypes.guess_type(str(source))
        return guessed or DEFAULT_CONTENT_TYPE
    return DEFAULT_CONTENT_TYPE


async def resolve_source(data: Payload) -> Payload:
    """Turn a ``str`` that names an existing file into a path.

    Any other string is treated as text content, mirroring how callers pass
    either a local file name or literal data to ``upload``.
    """
    if isinstance(data, str):
        candidate = AsyncPath(data)
        try:
            if await candidate.is_file():
                return candidate
        except (OSError, ValueError):
            return data
    return data


async def read_payload(data: Payload) -> bytes:
    if isinstance(data, Path | AsyncPath):
        return await AsyncPath(data).read_bytes()
    if isinstance(data, str):
        return data.encode()
    return bytes(data)


def elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class StorageProvider(ABC):
    """Contract every storage backend satisfies.

    Backend clients stay private to the subclass; every public method returns
    one of the models above, and every failure is one of the exceptions in
    :mod:`storebench.errors`.
    """

    name: str = "base"
    settings_class: type[StorageBaseSettings] = StorageBaseSettings
    metadata: ProviderMetadata | None = None

    def __init__(self, config: Mapping[str, t.Any] | StorageBaseSettings) -> None:
        self.settings = self.validate_config(config)
        self._client: t.Any = None
        self._initialized = False
        self.logger = logger.bind(provider=self.name)

    @classmethod
    def validate_config(
        cls, config: Mapping[str, t.Any] | StorageBaseSettings | None
    ) -> t.Any:
        if config is None:
            msg = f"Configuration is required for provider '{cls.name}'"
            raise ConfigValidationError(msg, provider=cls.name)
        if isinstance(config, cls.settings_class):
            return config
        if isinstance(config, BaseModel):
            config = config.model_dump()
        try:
            return cls.settings_class.model_validate(dict(config))
        except ValidationError as e:
            msg = (
                f"Invalid configuration for provider '{cls.name}': "
                f"{describe_validation_error(e)}"
            )
            raise ConfigValidationError(msg, provider=cls.name) from e

    @property
    def initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    async def upload(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        encryption: bool = False,
    ) -> UploadResult: ...

    @abstractmethod
    async def download(
        self, key: str, destination_path: str | Path | AsyncPath
    ) -> DownloadResult: ...

    @abstractmethod
    async def get_metadata(self, key: str) -> ObjectMetadata: ...

    @abstractmethod
    async def list(
        self,
        *,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        continuation_token: str | None = None,
    ) -> ListPage: ...

    @abstractmethod
    async def delete(self, key: str) -> DeleteResult: ...

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def get_signed_url(
        self,
        key: str,
        *,
        method: str = "GET",
        expires_seconds: int = DEFAULT_SIGNED_URL_EXPIRY,
    ) -> SignedUrl: ...

    @abstractmethod
    async def copy(self, source_key: str, destination_key: str) -> CopyResult: ...

    async def iter_objects(
        self, prefix: str | None = None, page_size: int = DEFAULT_LIST_LIMIT
    ) -> AsyncGenerator[ObjectMetadata]:
        """Yield every object under ``prefix``, following continuation tokens."""
        token: str | None = None
        while True:
            page = await self.list(
                prefix=prefix, limit=page_size, continuation_token=token
            )
            for obj in page.objects:
                yield obj
            if not page.is_truncated or not page.continuation_token:
                return
            token = page.continuation_token

    async def get_health(self) -> HealthStatus:
        try:
            await self.list(limit=1)
        except Exception as e:
            self.logger.warning(f"Health probe failed: {e}")
            return HealthStatus(status="unhealthy", provider=self.name, error=str(e))
        return HealthStatus(status="healthy", provider=self.name)

    async def cleanup(self) -> None:
        """Release the backend client. Safe to call more than once."""
        client, self._client = self._client, None
        self._initialized = False
        if client is not None:
            await self._close_client(client)

    async def _close_client(self, client: t.Any) -> None:
        for method_name in ("close", "aclose", "disconnect"):
            method = getattr(client, method_name, None)
            if method is None:
                continue
            result = method()
            if hasattr(result, "__await__"):
                await result
            self.logger.debug(f"Closed client using {method_name}()")
            return

    async def __aenter__(self) -> t.Self:
        if not self._initialized:
            await self.initialize()
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.cleanup()

    def info_details(self) -> dict[str, t.Any]:
        return {}

    @classmethod
    def describe(cls) -> ProviderInfo:
        meta = cls.metadata
        return ProviderInfo(
            name=cls.name,
            title=meta.name if meta else cls.name,
            version=meta.version if meta else "1.0.0",
            capabilities=list(meta.capabilities) if meta else list(CORE_CAPABILITIES),
        )

    def get_info(self) -> ProviderInfo:
        return self.describe().model_copy(update={"details": self.info_details()})

    @staticmethod
    def generate_test_key(prefix: str = "test") -> str:
        suffix = "".join(
            random.choices(string.ascii_lowercase + string.digits, k=6)  # nosec B311
        )
        return f"{prefix}-{int(time.time() * 1000)}-{suffix}"

    @staticmethod
    def expiry(expires_seconds: int) -> datetime:
        return datetime.now(UTC) + timedelta(seconds=expires_seconds)
