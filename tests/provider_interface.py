"""Behaviour every storage provider must share.

Test modules subclass :class:`ProviderContractTests` and supply a ``storage``
fixture returning an initialized provider.
"""

import re
from pathlib import Path

import asyncio
import pytest

from storebench.errors import NotFoundError
from storebench.providers import StorageProvider

GREETING = "Hello, Object Storage!"


class ProviderContractTests:
    @pytest.mark.asyncio
    async def test_upload_reports_size(self, storage: StorageProvider) -> None:
        data = b"x" * 1234
        result = await storage.upload("sized.bin", data)

        assert result.key == "sized.bin"
        assert result.size == len(data)
        assert (await storage.get_metadata("sized.bin")).size == len(data)

    @pytest.mark.asyncio
    async def test_text_round_trip(
        self, storage: StorageProvider, tmp_path: Path
    ) -> None:
        key = storage.generate_test_key("upload-test")
        await storage.upload(key, GREETING)
        target = tmp_path / "download-test.txt"

        result = await storage.download(key, target)

        assert target.read_text() == GREETING
        assert result.size == len(GREETING)
        assert result.destination_path == str(target)

    @pytest.mark.asyncio
    async def test_binary_round_trip_is_exact(
        self, storage: StorageProvider, tmp_path: Path
    ) -> None:
        data = bytes(range(256)) * (10 * 1024 * 1024 // 256)
        await storage.upload("large.bin", data)
        target = tmp_path / "large.bin"

        await storage.download("large.bin", target)

        assert target.read_bytes() == data

    @pytest.mark.asyncio
    async def test_download_creates_missing_directories(
        self, storage: StorageProvider, tmp_path: Path
    ) -> None:
        await storage.upload("nested.txt", "nested")
        target = tmp_path / "a" / "b" / "c" / "nested.txt"

        await storage.download("nested.txt", target)

        assert target.read_text() == "nested"

    @pytest.mark.asyncio
    async def test_download_missing_key(
        self, storage: StorageProvider, tmp_path: Path
    ) -> None:
        with pytest.raises(NotFoundError):
            await storage.download("missing.txt", tmp_path / "missing.txt")

    @pytest.mark.asyncio
    async def test_get_metadata_missing_key(self, storage: StorageProvider) -> None:
        with pytest.raises(NotFoundError, match="not found"):
            await storage.get_metadata("non-existent-object")

    @pytest.mark.asyncio
    async def test_user_metadata_round_trip(self, storage: StorageProvider) -> None:
        metadata = {"user-id": "12345", "sensitive-data": "should-be-encrypted"}
        await storage.upload("meta.txt", "Test data", metadata=metadata)

        result = await storage.get_metadata("meta.txt")

        assert result.metadata == metadata

    @pytest.mark.asyncio
    async def test_content_type(self, storage: StorageProvider, tmp_path: Path) -> None:
        source = tmp_path / "page.html"
        source.write_text("<p>hi</p>")
        await storage.upload("from-path", source)
        await storage.upload("explicit", b"{}", content_type="application/json")
        await storage.upload("default", b"raw")

        assert (await storage.get_metadata("from-path")).content_type == "text/html"
        assert (
            await storage.get_metadata("explicit")
        ).content_type == "application/json"
        assert (
            await storage.get_metadata("default")
        ).content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_upload_from_path_string(
        self, storage: StorageProvider, tmp_path: Path
    ) -> None:
        source = tmp_path / "notes.txt"
        source.write_bytes(b"from a file")

        result = await storage.upload("notes.txt", str(source))

        assert result.size == len(b"from a file")
        assert (await storage.get_metadata("notes.txt")).content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, storage: StorageProvider) -> None:
        await storage.upload("gone.txt", "bye")

        first = await storage.delete("gone.txt")
        second = await storage.delete("gone.txt")

        assert first.deleted is True
        assert second.deleted is False
        assert not await storage.exists("gone.txt")

    @pytest.mark.asyncio
    async def test_exists(self, storage: StorageProvider) -> None:
        assert not await storage.exists("here.txt")
        await storage.upload("here.txt", "here")
        assert await storage.exists("here.txt")

    @pytest.mark.asyncio
    async def test_list_prefix_after_concurrent_uploads(
        self, storage: StorageProvider
    ) -> None:
        keys = [f"batch/{i}.txt" for i in range(5)]
        await asyncio.gather(*(storage.upload(key, key) for key in keys))
        await storage.upload("other/file.txt", "other")

        page = await storage.list(prefix="batch/")

        assert [obj.key for obj in page.objects] == keys
        assert page.is_truncated is False
        assert page.continuation_token is None

    @pytest.mark.asyncio
    async def test_list_pages_with_continuation_token(
        self, storage: StorageProvider
    ) -> None:
        for name in ("c", "a", "e", "b", "d"):
            await storage.upload(f"page/{name}", name)

        first = await storage.list(prefix="page/", limit=2)
        second = await storage.list(
            prefix="page/", limit=2, continuation_token=first.continuation_token
        )
        third = await storage.list(
            prefix="page/", limit=2, continuation_token=second.continuation_token
        )

        assert [o.key for o in first.objects] == ["page/a", "page/b"]
        assert first.is_truncated is True
        assert first.continuation_token == "page/b"
        assert [o.key for o in second.objects] == ["page/c", "page/d"]
        assert [o.key for o in third.objects] == ["page/e"]
        assert third.is_truncated is False

    @pytest.mark.asyncio
    async def test_iter_objects_follows_tokens(self, storage: StorageProvider) -> None:
        for i in range(7):
            await storage.upload(f"iter/{i}", str(i))

        keys = [obj.key async for obj in storage.iter_objects("iter/", page_size=3)]

        assert keys == [f"iter/{i}" for i in range(7)]

    @pytest.mark.asyncio
    async def test_list_rejects_non_positive_limit(
        self, storage: StorageProvider
    ) -> None:
        with pytest.raises(ValueError, match="positive"):
            await storage.list(limit=0)

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, storage: StorageProvider) -> None:
        with pytest.raises(ValueError):
            await storage.upload("", "data")
        with pytest.raises(ValueError):
            await storage.exists("")

    @pytest.mark.asyncio
    async def test_copy(self, storage: StorageProvider, tmp_path: Path) -> None:
        await storage.upload("src.txt", "copy me", metadata={"a": "1"})

        result = await storage.copy("src.txt", "dst.txt")
        target = tmp_path / "dst.txt"
        await storage.download("dst.txt", target)

        assert result.source_key == "src.txt"
        assert result.destination_key == "dst.txt"
        assert target.read_text() == "copy me"
        assert (await storage.get_metadata("dst.txt")).metadata == {"a": "1"}
        assert await storage.exists("src.txt")

    @pytest.mark.asyncio
    async def test_copy_missing_source(self, storage: StorageProvider) -> None:
        with pytest.raises(NotFoundError):
            await storage.copy("nope.txt", "dst.txt")

    @pytest.mark.asyncio
    async def test_signed_url(self, storage: StorageProvider) -> None:
        await storage.upload("signed.txt", "signed")

        signed = await storage.get_signed_url("signed.txt", expires_seconds=60)

        assert signed.url
        assert signed.method == "GET"

    @pytest.mark.asyncio
    async def test_health(self, storage: StorageProvider) -> None:
        health = await storage.get_health()

        assert health.status == "healthy"
        assert health.provider == storage.name
        assert health.error is None

    @pytest.mark.asyncio
    async def test_etag_changes_with_content(self, storage: StorageProvider) -> None:
        first = await storage.upload("etag.txt", "one")
        second = await storage.upload("etag.txt", "two")

        assert first.etag != second.etag
        assert (await storage.get_metadata("etag.txt")).etag == second.etag

    @pytest.mark.asyncio
    async def test_generate_test_key(self, storage: StorageProvider) -> None:
        key = storage.generate_test_key("upload-test")

        assert re.fullmatch(r"upload-test-\d{13}-[a-z0-9]{6}", key)

    @pytest.mark.asyncio
    async def test_get_info(self, storage: StorageProvider) -> None:
        info = storage.get_info()

        assert info.name == storage.name
        assert info.capabilities

