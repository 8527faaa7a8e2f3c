import builtins
import time
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

import typing as t
from anyio import Path as AsyncPath
from fsspec.asyn import AsyncFileSystem

from storebench.errors import (
    ConnectionError,
    NotFoundError,
    OperationError,
    StorageError,
)

from ._base import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_SIGNED_URL_EXPIRY,
    CopyResult,
    DeleteResult,
    DownloadResult,
    ListPage,
    ObjectMetadata,
    Payload,
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


class FsspecStorageSettings(StorageBaseSettings):
    bucket: str


def parse_timestamp(value: t.Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value).astimezone()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class FsspecProvider(StorageProvider):
    """Provider backed by an asynchronous fsspec filesystem.

    Subclasses set ``file_system``, build client options in
    ``_client_options`` and translate upload options and ``_info`` records in
    the two ``_upload_kwargs`` / ``_info_to_metadata`` hooks.
    """

    file_system: t.Any = AsyncFileSystem
    scheme: str = "fsspec"
    settings: FsspecStorageSettings

    @property
    def bucket(self) -> str:
        return self.settings.bucket

    @property
    def client(self) -> t.Any:
        if self._client is None:
            msg = f"{self.name} client not initialized. Call initialize() first."
            raise RuntimeError(msg)
        return self._client

    def _client_options(self) -> dict[str, t.Any]:
        return {}

    async def _create_client(self) -> t.Any:
        return self.file_system(asynchronous=True, **self._client_options())

    def _path(self, key: str) -> str:
        return f"{self.bucket}/{validate_key(key)}"

    def _key(self, path: str) -> str:
        return path.removeprefix(f"{self.bucket}/")

    def _upload_kwargs(
        self,
        content_type: str,
        metadata: dict[str, str],
        encryption: bool,
    ) -> dict[str, t.Any]:
        return {}

    def _info_to_metadata(self, key: str, info: dict[str, t.Any]) -> ObjectMetadata:
        return ObjectMetadata(
            key=key,
            size=int(info.get("size") or 0),
            etag=info.get("ETag") or info.get("etag"),
        )

    async def _user_metadata(self, path: str, info: dict[str, t.Any]) -> dict[str, str]:
        return dict(info.get("metadata") or {})

    def _translate(
        self, operation: str, error: Exception, key: str | None = None
    ) -> StorageError:
        if isinstance(error, StorageError):
            return error
        if isinstance(error, FileNotFoundError):
            if key is None:
                return NotFoundError(str(error), provider=self.name)
            return NotFoundError.for_key(key, self.name)
        if isinstance(error, PermissionError | TimeoutError | builtins.ConnectionError):
            msg = f"{self.name} {operation} failed: {error}"
            return ConnectionError(msg, provider=self.name, key=key)
        return OperationError.wrap(operation, error, self.name, key)

    async def initialize(self) -> None:
        try:
            client = await self._create_client()
            found = await client._exists(self.bucket)
        except Exception as e:
            self._client = None
            msg = f"Cannot connect to {self.name}: {e}"
            raise ConnectionError(msg, provider=self.name) from e
        if not found:
            self._client = None
            msg = f"Bucket '{self.bucket}' does not exist"
            raise NotFoundError(msg, provider=self.name)
        self._client = client
        self._initialized = True
        self.logger.debug(f"Connected to bucket {self.bucket}")

    async def upload(
        self,
        key: str,
        data: Payload,
        *,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
        encryption: bool = False,
    ) -> UploadResult:
        path = self._path(key)
        started = time.perf_counter()
        source = await resolve_source(data)
        payload = await read_payload(source)
        kwargs = self._upload_kwargs(
            guess_content_type(source, content_type), dict(metadata or {}), encryption
        )
        try:
            await self.client._pipe_file(path, payload, **kwargs)
            info = await self.client._info(path)
        except Exception as e:
            raise self._translate("upload", e, key) from e
        return UploadResult(
            key=key,
            location=f"{self.scheme}://{path}",
            etag=self._info_to_metadata(key, info).etag,
            size=len(payload),
            elapsed_ms=elapsed_ms(started),
        )

    async def download(
        self, key: str, destination_path: str | Path | AsyncPath
    ) -> DownloadResult:
        path = self._path(key)
        started = time.perf_counter()
        destination = AsyncPath(destination_path)
        try:
            info = await self.client._info(path)
            payload = await self.client._cat_file(path)
            user_metadata = await self._user_metadata(path, info)
        except Exception as e:
            raise self._translate("download", e, key) from e
        try:
            await destination.parent.mkdir(parents=True, exist_ok=True)
            await destination.write_bytes(payload)
        except OSError as e:
            raise OperationError.wrap("download", e, self.name, key) from e
        expected = int(info.get("size") or 0)
        if len(payload) != expected:
            msg = (
                f"{self.name} download failed: received {len(payload)} bytes "
                f"for '{key}', expected {expected}"
            )
            raise OperationError(msg, provider=self.name, key=key)
        return DownloadResult(
            key=key,
            destination_path=str(destination),
            size=len(payload),
            elapsed_ms=elapsed_ms(started),
            metadata=user_metadata,
        )

    async def get_metadata(self, key: str) -> ObjectMetadata:
        path = self._path(key)
        try:
            info = await self.client._info(path)
            if info.get("type") == "directory":
                raise FileNotFoundError(path)
            result = self._info_to_metadata(key, info)
            result.metadata = await self._user_metadata(path, info)
        except Exception as e:
            raise self._translate("get_metadata", e, key) from e
        return result

    async def _list_entries(
        self, prefix: str, limit: int, start_after: str | None
    ) -> tuple[list[tuple[str, dict[str, t.Any]]], bool]:
        """Return up to ``limit`` objects after ``start_after`` in key order.

        The second item tells whether more objects follow. This version walks
        the prefix with ``_find``; backends with a paged listing API override
        it so one page costs one bounded request.
        """
        found = await self.client._find(self.bucket, prefix=prefix, detail=True)
        matching = sorted(
            (
                (self._key(path), info)
                for path, info in found.items()
                if info.get("type") != "directory"
                and self._key(path).startswith(prefix)
                and (start_after is None or self._key(path) > start_after)
            ),
            key=lambda entry: entry[0],
        )
        return matching[:limit], len(matching) > limit

    async def list(
        self,
        *,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        continuation_token: str | None = None,
    ) -> ListPage:
        validate_limit(limit)
        try:
            entries, more = await self._list_entries(
                prefix or "", limit, continuation_token
            )
        except Exception as e:
            raise self._translate("list", e) from e
        page = entries[:limit]
        truncated = bool(page) and (more or len(entries) > limit)
        return ListPage(
            objects=[self._info_to_metadata(key, info) for key, info in page],
            is_truncated=truncated,
            continuation_token=page[-1][0] if truncated else None,
        )

    async def delete(self, key: str) -> DeleteResult:
        path = self._path(key)
        try:
            await self.client._rm_file(path)
        except FileNotFoundError:
            return DeleteResult(key=key, deleted=False)
        except Exception as e:
            raise self._translate("delete", e, key) from e
        return DeleteResult(key=key, deleted=True)

    async def exists(self, key: str) -> bool:
        path = self._path(key)
        try:
            return bool(await self.client._exists(path))
        except Exception as e:
            raise self._translate("exists", e, key) from e

    async def get_signed_url(
        self,
        key: str,
        *,
        method: str = "GET",
        expires_seconds: int = DEFAULT_SIGNED_URL_EXPIRY,
    ) -> SignedUrl:
        path = self._path(key)
        if method.upper() != "GET":
            msg = f"{self.name} signed URLs only support GET, got {method}"
            raise OperationError(msg, provider=self.name, key=key)
        try:
            url = await self.client._sign(path, expiration=expires_seconds)
        except Exception as e:
            raise self._translate("get_signed_url", e, key) from e
        return SignedUrl(url=url, expires_at=self.expiry(expires_seconds), method="GET")

    async def copy(self, source_key: str, destination_key: str) -> CopyResult:
        source = self._path(source_key)
        destination = self._path(destination_key)
        try:
            if not await self.client._exists(source):
                raise NotFoundError.for_key(source_key, self.name)
            await self.client._cp_file(source, destination)
            info = await self.client._info(destination)
        except Exception as e:
            raise self._translate("copy", e, source_key) from e
        return CopyResult(
            source_key=source_key,
            destination_key=destination_key,
            etag=self._info_to_metadata(destination_key, info).etag,
        )

    async def _close_client(self, client: t.Any) -> None:
        clear = getattr(type(client), "clear_instance_cache", None)
        if clear is not None:
            clear()

    def info_details(self) -> dict[str, t.Any]:
        return {"bucket": self.bucket}
