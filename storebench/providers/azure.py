import typing as t
from adlfs import AzureBlobFileSystem
from azure.storage.blob import ContentSettings
from pydantic import AliasChoices, Field, SecretStr, model_validator

from ._base import (
    CORE_CAPABILITIES,
    ObjectMetadata,
    ProviderCapability,
    ProviderMetadata,
)
from ._fsspec import FsspecProvider, FsspecStorageSettings, parse_timestamp

MODULE_METADATA = ProviderMetadata(
    name="Azure Blob Storage",
    provider="azure",
    version="1.0.0",
    capabilities=[*CORE_CAPABILITIES, ProviderCapability.ENCRYPTION],
    required_packages=["adlfs", "azure-storage-blob"],
    description="Azure Blob Storage through adlfs",
    config_example={
        "account_name": "mystorageaccount",
        "account_key": "your-account-key",  # pragma: allowlist secret
        "container": "my-container",
    },
)


class StorageSettings(FsspecStorageSettings):
    bucket: str = Field(
        validation_alias=AliasChoices(
            "bucket", "container", "container_name", "containerName"
        )
    )
    account_name: str | None = Field(
        default=None, validation_alias=AliasChoices("account_name", "accountName")
    )
    account_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("account_key", "accountKey")
    )
    connection_string: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("connection_string", "connectionString"),
    )

    @model_validator(mode="after")
    def check_credentials(self) -> "StorageSettings":
        if not self.connection_string and not self.account_name:
            msg = "either connection_string or account_name is required"
            raise ValueError(msg)
        return self


def _content_type(info: dict[str, t.Any]) -> str | None:
    settings = info.get("content_settings")
    if isinstance(settings, dict):
        return settings.get("content_type")
    return getattr(settings, "content_type", None)


class Storage(FsspecProvider):
    name = "azure"
    scheme = "az"
    file_system: t.Any = AzureBlobFileSystem
    settings_class = StorageSettings
    metadata = MODULE_METADATA
    settings: StorageSettings

    def _client_options(self) -> dict[str, t.Any]:
        if self.settings.connection_string:
            return {
                "connection_string": self.settings.connection_string.get_secret_value()
            }
        options: dict[str, t.Any] = {"account_name": self.settings.account_name}
        if self.settings.account_key:
            options["account_key"] = self.settings.account_key.get_secret_value()
        return options

    def _upload_kwargs(
        self,
        content_type: str,
        metadata: dict[str, str],
        encryption: bool,
    ) -> dict[str, t.Any]:
        # Blob storage encrypts at rest for every account.
        return {
            "metadata": metadata,
            "content_settings": ContentSettings(content_type=content_type),
        }

    def _info_to_metadata(self, key: str, info: dict[str, t.Any]) -> ObjectMetadata:
        etag = info.get("etag")
        return ObjectMetadata(
            key=key,
            size=int(info.get("size") or 0),
            last_modified=parse_timestamp(info.get("last_modified")),
            etag=etag.strip('"') if etag else None,
            content_type=_content_type(info),
            metadata=dict(info.get("metadata") or {}),
        )

    async def _list_entries(
        self, prefix: str, limit: int, start_after: str | None
    ) -> tuple[list[tuple[str, dict[str, t.Any]]], bool]:
        container = self.client.service_client.get_container_client(self.bucket)
        blobs = container.list_blobs(
            name_starts_with=prefix or None,
            include=["metadata"],
            results_per_page=limit + 1,
        )
        entries: list[tuple[str, dict[str, t.Any]]] = []
        async for blob in blobs:
            if start_after is not None and blob.name <= start_after:
                continue
            if len(entries) == limit:
                return entries, True
            entries.append(
                (
                    blob.name,
                    {
                        "size": blob.size,
                        "etag": blob.etag,
                        "last_modified": blob.last_modified,
                        "content_settings": blob.content_settings,
                        "metadata": blob.metadata,
                    },
                )
            )
        return entries, False

    def info_details(self) -> dict[str, t.Any]:
        return {"container": self.bucket, "account_name": self.settings.account_name}
