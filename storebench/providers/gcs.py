import typing as t
from gcsfs import GCSFileSystem
from pydantic import AliasChoices, Field

from ._base import (
    CORE_CAPABILITIES,
    ObjectMetadata,
    ProviderCapability,
    ProviderMetadata,
)
from ._fsspec import FsspecProvider, FsspecStorageSettings, parse_timestamp

MODULE_METADATA = ProviderMetadata(
    name="Google Cloud Storage",
    provider="gcp",
    version="1.0.0",
    capabilities=[*CORE_CAPABILITIES, ProviderCapability.ENCRYPTION],
    required_packages=["gcsfs"],
    description="Google Cloud Storage through gcsfs",
    config_example={
        "project_id": "my-project",
        "key_filename": "/path/to/service-account.json",
        "bucket": "my-storage-bucket",
    },
)


class StorageSettings(FsspecStorageSettings):
    project_id: str | None = Field(
        default=None, validation_alias=AliasChoices("project_id", "projectId")
    )
    key_filename: str | None = Field(
        default=None, validation_alias=AliasChoices("key_filename", "keyFilename")
    )
    credentials: dict[str, t.Any] | None = None


class Storage(FsspecProvider):
    name = "gcp"
    scheme = "gs"
    file_system: t.Any = GCSFileSystem
    settings_class = StorageSettings
    metadata = MODULE_METADATA
    settings: StorageSettings

    def _client_options(self) -> dict[str, t.Any]:
        options: dict[str, t.Any] = {}
        if self.settings.project_id:
            options["project"] = self.settings.project_id
        if self.settings.credentials:
            options["token"] = self.settings.credentials
        elif self.settings.key_filename:
            options["token"] = self.settings.key_filename
        return options

    def _upload_kwargs(
        self,
        content_type: str,
        metadata: dict[str, str],
        encryption: bool,
    ) -> dict[str, t.Any]:
        # Objects are always encrypted at rest by GCS.
        return {"content_type": content_type, "metadata": metadata or None}

    def _info_to_metadata(self, key: str, info: dict[str, t.Any]) -> ObjectMetadata:
        return ObjectMetadata(
            key=key,
            size=int(info.get("size") or 0),
            last_modified=parse_timestamp(info.get("updated")),
            etag=info.get("etag"),
            content_type=info.get("contentType"),
            metadata=dict(info.get("metadata") or {}),
            storage_class=info.get("storageClass"),
        )

    async def _list_entries(
        self, prefix: str, limit: int, start_after: str | None
    ) -> tuple[list[tuple[str, dict[str, t.Any]]], bool]:
        # startOffset is inclusive, so ask for one extra to drop the token key.
        response = await self.client._call(
            "GET",
            "b/{}/o",
            self.bucket,
            prefix=prefix or None,
            startOffset=start_after,
            maxResults=limit + 1 if start_after else limit,
            json_out=True,
        )
        items = [
            item
            for item in response.get("items", [])
            if start_after is None or item["name"] > start_after
        ]
        more = "nextPageToken" in response or len(items) > limit
        return [(item["name"], item) for item in items[:limit]], more

    def info_details(self) -> dict[str, t.Any]:
        return {"bucket": self.bucket, "project_id": self.settings.project_id}
