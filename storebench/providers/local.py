"""Filesystem-backed reference provider.

Each object is stored as a content file under ``base_path`` plus a JSON
sidecar under ``base_path/<metadata_dir_name>`` that carries the canonical
key, size, content type, MD5 digest, upload time and user metadata. The
sidecar is the source of truth for presence; content is always written
before its sidecar.
"""

import hashlib
import re
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import msgspec
import typing as t
from anyio import Path as AsyncPath
from pydantic import Field

from storebench.errors import ConnectionError, NotFoundError, OperationError

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
    name="Local Storage",
    provider="local",
    version="1.0.0",
    capabilities=CORE_CAPABILITIES,
    required_packages=["anyio", "msgspec"],
    description="Local filesystem storage with JSON sidecar metadata",
    config_example={
        "base_path": "./local-storage",
    },
)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._/-]")


class SidecarRecord(msgspec.Struct, rename="camel"):
    key: str
    size: int
    content_type: str
    content_hash: str
    upload_timestamp: str
    user_metadata: dict[str, str] = {}


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StorageSettings(StorageBaseSettings):
    base_path: str = "./local-storage"
    metadata_dir_name: str = ".metadata"
    chunk_size: int = Field(default=64 * 1024, gt=0)


class Storage(StorageProvider):
    name = "local"
    settings_class = StorageSettings
    metadata = MODULE_METADATA
    settings: StorageSettings

    def __init__(self, config: Mapping[str, t.Any] | StorageSettings) -> None:
        super().__init__(config)
        self.base_path = AsyncPath(self.settings.base_path)
        self.metadata_path = self.base_path / self.settings.metadata_dir_name

    def sanitize_key(self, key: str) -> str:
        """Map an object key onto a relative path below ``base_path``.

        Characters outside ``[A-Za-z0-9._/-]`` become ``_``, so distinct keys
        can collide after sanitizing.
        """
        validate_key(key)
        relative = _UNSAFE_KEY_CHARS.sub("_", key).lstrip("/")
        segments = relative.split("/")
        if not relative or ".." in segments:
            msg = f"Object key {key!r} does not map to a path inside the store"
            raise ValueError(msg)
        if segments[0] == self.settings.metadata_dir_name:
            msg = f"Object key {key!r} collides with the metadata directory"
            raise ValueError(msg)
        return relative

    def _content_path(self, relative: str) -> AsyncPath:
        return self.base_path / relative

    def _sidecar_path(self, relative: str) -> AsyncPath:
        return self.metadata_path / f"{relative}.json"

    async def initialize(self) -> None:
        try:
            await self.base_path.mkdir(parents=True, exist_ok=True)
            await self.metadata_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot prepare local storage at {self.base_path}: {e}"
            raise ConnectionError(msg, provider=self.name) from e
        self._initialized = True
        self.logger.debug(f"Local storage ready at {self.base_path}")

    async def _copy_file(self, source: AsyncPath, destination: AsyncPath) -> int:
        written = 0
        async with (
            await source.open("rb") as src,
            await destination.open("wb") as dst,
        ):
            while chunk := await src.read(self.settings.chunk_size):
                await dst.write(chunk)
                written += len(chunk)
        return written

    async def _hash_file(self, path: AsyncPath) -> str:
        digest = hashlib.md5(usedforsecurity=False)
        async with await path.open("rb") as f:
            while chunk := await f.read(self.settings.chunk_size):
                digest.update(chunk)
        return digest.hexdigest()

    async def _write_record(self, relative: str, record: SidecarRecord) -> None:
        sidecar = self._sidecar_path(relative)
        await sidecar.parent.mkdir(parents=True, exist_ok=True)
        await sidecar.write_bytes(msgspec.json.encode(record))

    async def _read_record(self, relative: str) -> SidecarRecord | None:
        try:
            raw = await self._sidecar_path(relative).read_bytes()
        except FileNotFoundError:
            return None
        return msgspec.json.decode(raw, type=SidecarRecord)

    async def _require(
        self, key: str, operation: str
    ) -> tuple[SidecarRecord, AsyncPath]:
        relative = self.sanitize_key(key)
        try:
            record = await self._read_record(relative)
        except (OSError, msgspec.DecodeError) as e:
            raise OperationError.wrap(operation, e, self.name, key) from e
        if record is None:
            raise NotFoundError.for_key(key, self.name)
        content_path = self._content_path(relative)
        if not await content_path.is_file():
            self.logger.warning(f"Sidecar for '{key}' has no content file")
            raise NotFoundError.for_key(key, self.name)
        return record, content_path

    async def upload(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        encryption: bool = False,
    ) -> UploadResult:
        relative = self.sanitize_key(key)
        started = time.perf_counter()
        source = await resolve_source(data)
        content_path = self._content_path(relative)
        if encryption:
            self.logger.debug("Encryption requested; local files are stored as-is")
        try:
            await content_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(source, Path | AsyncPath):
                size = await self._copy_file(AsyncPath(source), content_path)
            else:
                payload = await read_payload(source)
                await content_path.write_bytes(payload)
                size = len(payload)
            content_hash = await self._hash_file(content_path)
            record = SidecarRecord(
                key=key,
                size=size,
                content_type=guess_content_type(source, content_type),
                content_hash=content_hash,
                upload_timestamp=_timestamp(),
                user_metadata=dict(metadata or {}),
            )
            await self._write_record(relative, record)
        except OSError as e:
            raise OperationError.wrap("upload", e, self.name, key) from e
        return UploadResult(
            key=key,
            location=str(content_path),
            etag=content_hash,
            size=size,
            elapsed_ms=elapsed_ms(started),
        )

    async def download(
        self, key: str, destination_path: str | Path | AsyncPath
    ) -> DownloadResult:
        started = time.perf_counter()
        record, content_path = await self._require(key, "download")
        destination = AsyncPath(destination_path)
        try:
            await destination.parent.mkdir(parents=True, exist_ok=True)
            written = await self._copy_file(content_path, destination)
        except OSError as e:
            raise OperationError.wrap("download", e, self.name, key) from e
        if written != record.size:
            msg = (
                f"local download failed: wrote {written} bytes for '{key}', "
                f"expected {record.size}"
            )
            raise OperationError(msg, provider=self.name, key=key)
        return DownloadResult(
            key=record.key,
            destination_path=str(destination),
            size=written,
            elapsed_ms=elapsed_ms(started),
            metadata=dict(record.user_metadata),
        )

    @staticmethod
    def _to_metadata(record: SidecarRecord) -> ObjectMetadata:
        return ObjectMetadata(
            key=record.key,
            size=record.size,
            last_modified=datetime.fromisoformat(record.upload_timestamp),
            etag=record.content_hash,
            content_type=record.content_type,
            metadata=dict(record.user_metadata),
        )

    async def get_metadata(self, key: str) -> ObjectMetadata:
        record, _ = await self._require(key, "get_metadata")
        return self._to_metadata(record)

    async def _scan_records(self) -> list[SidecarRecord]:
        records: list[SidecarRecord] = []
        if not await self.metadata_path.is_dir():
            return records
        async for sidecar in self.metadata_path.rglob("*.json"):
            if not await sidecar.is_file():
                continue
            try:
                records.append(
                    msgspec.json.decode(await sidecar.read_bytes(), type=SidecarRecord)
                )
            except (OSError, msgspec.DecodeError) as e:
                self.logger.warning(f"Skipping unreadable sidecar {sidecar}: {e}")
        return records

    async def list(
        self,
        *,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        continuation_token: str | None = None,
    ) -> ListPage:
        validate_limit(limit)
        try:
            records = await self._scan_records()
        except OSError as e:
            raise OperationError.wrap("list", e, self.name) from e
        matching = sorted(
            (
                r
                for r in records
                if (not prefix or r.key.startswith(prefix))
                and (continuation_token is None or r.key > continuation_token)
            ),
            key=lambda r: r.key,
        )
        page = matching[:limit]
        truncated = len(matching) > limit
        return ListPage(
            objects=[self._to_metadata(r) for r in page],
            is_truncated=truncated,
            continuation_token=page[-1].key if truncated else None,
        )

    async def delete(self, key: str) -> DeleteResult:
        relative = self.sanitize_key(key)
        sidecar = self._sidecar_path(relative)
        try:
            existed = await sidecar.exists()
            await self._content_path(relative).unlink(missing_ok=True)
            await sidecar.unlink(missing_ok=True)
        except OSError as e:
            raise OperationError.wrap("delete", e, self.name, key) from e
        return DeleteResult(key=key, deleted=existed)

    async def exists(self, key: str) -> bool:
        relative = self.sanitize_key(key)
        if not await self._sidecar_path(relative).exists():
            return False
        if not await self._content_path(relative).is_file():
            self.logger.warning(f"Sidecar for '{key}' has no content file")
            return False
        return True

    async def get_signed_url(
        self,
        key: str,
        *,
        method: str = "GET",
        expires_seconds: int = DEFAULT_SIGNED_URL_EXPIRY,
    ) -> SignedUrl:
        _, content_path = await self._require(key, "get_signed_url")
        resolved = await content_path.resolve()
        return SignedUrl(
            url=resolved.as_uri(),
            expires_at=self.expiry(expires_seconds),
            method=method.upper(),
        )

    async def copy(self, source_key: str, destination_key: str) -> CopyResult:
        record, source_path = await self._require(source_key, "copy")
        relative = self.sanitize_key(destination_key)
        destination = self._content_path(relative)
        cloned = msgspec.structs.replace(
            record, key=destination_key, upload_timestamp=_timestamp()
        )
        try:
            if relative != self.sanitize_key(source_key):
                await destination.parent.mkdir(parents=True, exist_ok=True)
                staging = destination.with_name(
                    f".{destination.name}.{uuid4().hex}.tmp"
                )
                try:
                    await self._copy_file(source_path, staging)
                    await staging.replace(destination)
                finally:
                    await staging.unlink(missing_ok=True)
            await self._write_record(relative, cloned)
        except OSError as e:
            raise OperationError.wrap("copy", e, self.name, destination_key) from e
        return CopyResult(
            source_key=source_key,
            destination_key=destination_key,
            etag=record.content_hash,
        )

    def info_details(self) -> dict[str, t.Any]:
        return {
            "base_path": str(self.base_path),
            "metadata_dir": str(self.metadata_path),
        }
