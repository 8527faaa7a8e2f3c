import typing as t
from pydantic import AliasChoices, Field, SecretStr
from s3fs import S3FileSystem

from ._base import (
    CORE_CAPABILITIES,
    ObjectMetadata,
    ProviderCapability,
    ProviderMetadata,
)
from ._fsspec import FsspecProvider, FsspecStorageSettings, parse_timestamp

MAX_KEYS_PER_REQUEST = 1000

MODULE_METADATA = ProviderMetadata(
    name="S3 Storage",
    provider="aws",
    version="1.0.0",
    capabilities=[*CORE_CAPABILITIES, ProviderCapability.ENCRYPTION],
    required_packages=["s3fs"],
    description="AWS S3 storage through s3fs",
    config_example={
        "access_key_id": "your-aws-access-key",  # pragma: allowlist secret
        "secret_access_key": "your-aws-secret-key",  # pragma: allowlist secret
        "region": "us-west-2",
        "bucket": "my-storage-bucket",
    },
)


class StorageSettings(FsspecStorageSettings):
    region: str = "us-east-1"
    access_key_id: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("access_key_id", "accessKeyId")
    )
    secret_access_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("secret_access_key", "secretAccessKey"),
    )
    endpoint: str | None = None


class Storage(FsspecProvider):
    name = "aws"
    scheme = "s3"
    file_system: t.Any = S3FileSystem
    settings_class = StorageSettings
    metadata = MODULE_METADATA
    settings: StorageSettings

    def _client_options(self) -> dict[str, t.Any]:
        options: dict[str, t.Any] = {
            "client_kwargs": {"region_name": self.settings.region},
        }
        if self.settings.access_key_id and self.settings.secret_access_key:
            options["key"] = self.settings.access_key_id.get_secret_value()
            options["secret"] = self.settings.secret_access_key.get_secret_value()
        if self.settings.endpoint:
            options["endpoint_url"] = self.settings.endpoint
        return options

    def _upload_kwargs(
        self,
        content_type: str,
        metadata: dict[str, str],
        encryption: bool,
    ) -> dict[str, t.Any]:
        kwargs: dict[str, t.Any] = {"ContentType": content_type, "Metadata": metadata}
        if encryption:
            kwargs["ServerSideEncryption"] = "AES256"
        return kwargs

    def _info_to_metadata(self, key: str, info: dict[str, t.Any]) -> ObjectMetadata:
        etag = info.get("ETag")
        return ObjectMetadata(
            key=key,
            size=int(info.get("size") or 0),
            last_modified=parse_timestamp(info.get("LastModified")),
            etag=etag.strip('"') if etag else None,
            content_type=info.get("ContentType"),
            storage_class=info.get("StorageClass"),
        )

    async def _list_entries(
        self, prefix: str, limit: int, start_after: str | None
    ) -> tuple[list[tuple[str, dict[str, t.Any]]], bool]:
        params: dict[str, t.Any] = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": min(limit, MAX_KEYS_PER_REQUEST),
        }
        if start_after:
            params["StartAfter"] = start_after
        response = await self.client._call_s3("list_objects_v2", **params)
        entries = [
            (
                obj["Key"],
                {
                    "size": obj.get("Size"),
                    "ETag": obj.get("ETag"),
                    "LastModified": obj.get("LastModified"),
                    "StorageClass": obj.get("StorageClass"),
                },
            )
            for obj in response.get("Contents", [])
        ]
        return entries, bool(response.get("IsTruncated"))

    async def _user_metadata(self, path: str, info: dict[str, t.Any]) -> dict[str, str]:
        return dict(await self.client._metadata(path))

    async def _close_client(self, client: t.Any) -> None:
        session = getattr(client, "_s3", None)
        if session is not None:
            await session.close()
        await super()._close_client(client)

    def info_details(self) -> dict[str, t.Any]:
        return {
            "bucket": self.bucket,
            "region": self.settings.region,
            "endpoint": self.settings.endpoint,
        }
