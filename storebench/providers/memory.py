import hashlib
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path

import typing as t
from anyio import Path as AsyncPath

from storebench.errors import NotFoundError, OperationError

from ._base import (
    CORE_CAPABILITIES,
    DEFAULT_LIST_LIMIT,
    DEFAULT_SIGNED_URL_EXPIRY,
    CopyResult,
    DeleteResult,
    DownloadResult,
    ListPage,
    ObjectMetadata,
    Payload,
    ProviderMetadata,
    SignedUrl,
    StorageBaseSettings,
    StorageProvider,
    UploadResult,
    elapsed_ms,
    guess_content_type,
    read_payload,
    resolve_source,
    validate_key,
    validate_limit,
)

MODULE_METADATA = ProviderMetadata(
    name="Memory Storage",
    provider="memory",
    version="1.0.0",
    capabilities=CORE_CAPABILITIES,
    required_packages=[],
    description="In-memory storage for tests and dry runs",
    config_example={},
)


@dataclass
class _StoredObject:
    data: bytes
    content_type: str
    etag: str
    metadata: dict[str, str] = field(default_factory=dict)
    last_modified: datetime = field(default_factory=lambda: datetime.now(UTC))


class StorageSettings(StorageBaseSettings):
    bucket: str = "memory"


class Storage(StorageProvider):
    name = "memory"
    settings_class = StorageSettings
    metadata = MODULE_METADATA
    settings: StorageSettings

    def __init__(self, config: Mapping[str, t.Any] | StorageSettings) -> None:
        super().__init__(config)
        self._objects: dict[str, _StoredObject] = {}

    async def initialize(self) -> None:
        self._initialized = True

    def _get(self, key: str) -> _StoredObject:
        validate_key(key)
        try:
            return self._objects[key]
        except KeyError:
            raise NotFoundError.for_key(key, self.name) from None

    def _to_metadata(self, key: str, obj: _StoredObject) -> ObjectMetadata:
        return ObjectMetadata(
            key=key,
            size=len(obj.data),
            last_modified=obj.last_modified,
            etag=obj.etag,
            content_type=obj.content_type,
            metadata=dict(obj.metadata),
        )

    async def upload(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        encryption: bool = False,
    ) -> UploadResult:
        validate_key(key)
        started = time.perf_counter()
        source = await resolve_source(data)
        payload = await read_payload(source)
        etag = hashlib.md5(payload, usedforsecurity=False).hexdigest()
        self._objects[key] = _StoredObject(
            data=payload,
            content_type=guess_content_type(source, content_type),
            etag=etag,
            metadata=dict(metadata or {}),
        )
        return UploadResult(
            key=key,
            location=f"memory://{self.settings.bucket}/{key}",
            etag=etag,
            size=len(payload),
            elapsed_ms=elapsed_ms(started),
        )

    async def download(
        self, key: str, destination_path: str | Path | AsyncPath
    ) -> DownloadResult:
        started = time.perf_counter()
        obj = self._get(key)
        destination = AsyncPath(destination_path)
        try:
            await destination.parent.mkdir(parents=True, exist_ok=True)
            await destination.write_bytes(obj.data)
        except OSError as e:
            raise OperationError.wrap("download", e, self.name, key) from e
        return DownloadResult(
            key=key,
            destination_path=str(destination),
            size=len(obj.data),
            elapsed_ms=elapsed_ms(started),
            metadata=dict(obj.metadata),
        )

    async def get_metadata(self, key: str) -> ObjectMetadata:
        return self._to_metadata(key, self._get(key))

    async def list(
        self,
        *,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        continuation_token: str | None = None,
    ) -> ListPage:
        validate_limit(limit)
        keys = sorted(
            k
            for k in self._objects
            if (not prefix or k.startswith(prefix))
            and (continuation_token is None or k > continuation_token)
        )
        page = keys[:limit]
        truncated = len(keys) > limit
        return ListPage(
            objects=[self._to_metadata(k, self._objects[k]) for k in page],
            is_truncated=truncated,
            continuation_token=page[-1] if truncated else None,
        )

    async def delete(self, key: str) -> DeleteResult:
        validate_key(key)
        return DeleteResult(key=key, deleted=self._objects.pop(key, None) is not None)

    async def exists(self, key: str) -> bool:
        validate_key(key)
        return key in self._objects

    async def get_signed_url(
        self,
        key: str,
        *,
        method: str = "GET",
        expires_seconds: int = DEFAULT_SIGNED_URL_EXPIRY,
    ) -> SignedUrl:
        self._get(key)
        return SignedUrl(
            url=f"memory://{self.settings.bucket}/{key}?expires={expires_seconds}",
            expires_at=self.expiry(expires_seconds),
            method=method.upper(),
        )

    async def copy(self, source_key: str, destination_key: str) -> CopyResult:
        obj = self._get(source_key)
        validate_key(destination_key)
        self._objects[destination_key] = replace(
            obj, metadata=dict(obj.metadata), last_modified=datetime.now(UTC)
        )
        return CopyResult(
            source_key=source_key, destination_key=destination_key, etag=obj.etag
        )

    async def cleanup(self) -> None:
        self._initialized = False

    def info_details(self) -> dict[str, t.Any]:
        return {"bucket": self.settings.bucket, "objects": len(self._objects)}
