import typing as t
from pydantic import AliasChoices, Field, SecretStr

from ._base import CORE_CAPABILITIES, ProviderMetadata
from ._fsspec import FsspecStorageSettings
from .s3 import Storage as S3Storage

MODULE_METADATA = ProviderMetadata(
    name="MinIO Storage",
    provider="minio",
    version="1.0.0",
    capabilities=CORE_CAPABILITIES,
    required_packages=["s3fs"],
    description="MinIO and other S3-compatible servers through s3fs",
    config_example={
        "end_point": "localhost",
        "port": 9000,
        "use_ssl": False,
        "access_key": "minioadmin",  # pragma: allowlist secret
        "secret_key": "minioadmin",  # pragma: allowlist secret
        "bucket": "test-bucket",
    },
)


class StorageSettings(FsspecStorageSettings):
    end_point: str = Field(
        default="localhost", validation_alias=AliasChoices("end_point", "endPoint")
    )
    port: int = 9000
    use_ssl: bool = Field(
        default=False, validation_alias=AliasChoices("use_ssl", "useSSL")
    )
    access_key: SecretStr = Field(
        validation_alias=AliasChoices("access_key", "accessKey")
    )
    secret_key: SecretStr = Field(
        validation_alias=AliasChoices("secret_key", "secretKey")
    )
    region: str = "us-east-1"

    @property
    def endpoint_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.end_point}:{self.port}"


class Storage(S3Storage):
    name = "minio"
    settings_class = StorageSettings  # type: ignore[assignment]
    metadata = MODULE_METADATA
    settings: StorageSettings  # type: ignore[assignment]

    def _client_options(self) -> dict[str, t.Any]:
        return {
            "key": self.settings.access_key.get_secret_value(),
            "secret": self.settings.secret_key.get_secret_value(),
            "endpoint_url": self.settings.endpoint_url,
            "client_kwargs": {"region_name": self.settings.region},
        }

    def _upload_kwargs(
        self,
        content_type: str,
        metadata: dict[str, str],
        encryption: bool,
    ) -> dict[str, t.Any]:
        if encryption:
            self.logger.debug("Server-side encryption is not requested from MinIO")
        return {"ContentType": content_type, "Metadata": metadata}

    def info_details(self) -> dict[str, t.Any]:
        return {"bucket": self.bucket, "endpoint": self.settings.endpoint_url}
