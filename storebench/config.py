"""Configuration source.

Settings come from three layers merged in order: the defaults of the
environment models below, an optional YAML or JSON file, and any environment
variable that is explicitly set. File keys may be camelCase; they are
normalized to the snake_case names the provider settings use.
"""

from pathlib import Path

import inflection
import msgspec
import typing as t
from loguru import logger
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from storebench.errors import ConfigNotFoundError, ConfigValidationError

__all__ = [
    "BenchmarkSettings",
    "Config",
    "FileSize",
    "TestingSettings",
    "deep_update",
]

CONFIG_SEARCH_PATHS = (
    "config/config.yaml",
    "config/config.yml",
    "config/config.json",
    "config.yaml",
    "config.yml",
    "config.json",
)

_KEY_ALIASES = {
    "timeout": "timeout_ms",
    "container_name": "container",
    "warmup": "warmup_runs",
}


def deep_update(*dicts: dict[str, t.Any]) -> dict[str, t.Any]:
    """Deep merge multiple dictionaries."""
    result: dict[str, t.Any] = {}
    for d in dicts:
        if isinstance(d, dict):
            for key, value in d.items():
                if (
                    key in result
                    and isinstance(result[key], dict)
                    and isinstance(value, dict)
                ):
                    result[key] = deep_update(result[key], value)
                else:
                    result[key] = value
    return result


class _EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    renames: t.ClassVar[dict[str, str]] = {}

    def to_config(self, *, explicit: bool = False) -> dict[str, t.Any]:
        values = (
            self.model_dump(exclude_unset=True)
            if explicit
            else self.model_dump(exclude_none=True)
        )
        return {self.renames.get(k, k): v for k, v in values.items()}


class AwsEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="AWS_")

    region: str = "us-west-2"
    bucket: str = "test-bucket"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    endpoint: str | None = None


class GcpEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="GCP_")
    renames: t.ClassVar[dict[str, str]] = {"key_file": "key_filename"}

    project_id: str | None = None
    bucket: str = "test-bucket"
    key_file: str | None = None
    credentials: dict[str, t.Any] | None = None


class AzureEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="AZURE_")

    account_name: str | None = None
    account_key: str | None = None
    container: str = "test-container"
    connection_string: str | None = None


class MinioEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="MINIO_")
    renames: t.ClassVar[dict[str, str]] = {"endpoint": "end_point"}

    endpoint: str = "localhost"
    port: int = 9000
    use_ssl: bool = False
    access_key: str | None = None
    secret_key: str | None = None
    bucket: str = "test-bucket"


class LocalEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="LOCAL_STORAGE_")
    renames: t.ClassVar[dict[str, str]] = {"path": "base_path"}

    path: str = "./local-storage"


class TestingEnv(_EnvSettings):
    renames: t.ClassVar[dict[str, str]] = {
        "test_timeout": "timeout_ms",
        "test_run_timeout": "run_timeout",
    }

    test_timeout: int = 30000
    test_run_timeout: float | None = None
    retry_attempts: int = 3
    concurrent_connections: int = 10
    test_data_dir: str = "test-data"
    cleanup_after_tests: bool = True


class BenchmarkEnv(_EnvSettings):
    model_config = SettingsConfigDict(env_prefix="BENCHMARK_")
    renames: t.ClassVar[dict[str, str]] = {"warmup": "warmup_runs"}

    iterations: int = 5
    warmup: int = 2


_PROVIDER_ENV: dict[str, type[_EnvSettings]] = {
    "aws": AwsEnv,
    "gcp": GcpEnv,
    "azure": AzureEnv,
    "minio": MinioEnv,
    "local": LocalEnv,
}


class TestingSettings(BaseModel):
    __test__ = False

    timeout_ms: int = 30000
    run_timeout: float | None = None
    retry_attempts: int = 3
    concurrent_connections: int = 10
    test_data_dir: str = "test-data"
    cleanup_after_tests: bool = True


class FileSize(BaseModel):
    name: str
    size: int


class BenchmarkSettings(BaseModel):
    file_sizes: list[FileSize] = Field(
        default_factory=lambda: [
            FileSize(name="1KB", size=1024),
            FileSize(name="1MB", size=1024 * 1024),
            FileSize(name="10MB", size=10 * 1024 * 1024),
            FileSize(name="100MB", size=100 * 1024 * 1024),
        ]
    )
    iterations: int = 5
    warmup_runs: int = 2
    concurrency: int = 5
    large_object_size: int = 10 * 1024 * 1024


def _has(config: dict[str, t.Any], *keys: str) -> bool:
    return all(config.get(k) not in (None, "") for k in keys)


_VALIDATORS: dict[str, t.Callable[[dict[str, t.Any]], bool]] = {
    "aws": lambda c: _has(c, "region", "bucket", "access_key_id", "secret_access_key"),
    "gcp": lambda c: _has(c, "project_id", "bucket")
    and (_has(c, "key_filename") or _has(c, "credentials")),
    "azure": lambda c: _has(c, "container")
    and (_has(c, "connection_string") or _has(c, "account_name", "account_key")),
    "minio": lambda c: _has(c, "end_point", "access_key", "secret_key", "bucket"),
    "local": lambda c: _has(c, "base_path"),
    "memory": lambda c: True,
}


def _normalize_keys(values: dict[str, t.Any]) -> dict[str, t.Any]:
    normalized = {}
    for key, value in values.items():
        name = inflection.underscore(str(key))
        normalized[_KEY_ALIASES.get(name, name)] = value
    return normalized


def normalize_file_config(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Snake-case the provider, testing and benchmark sections of a file."""
    result = dict(data)
    providers = data.get("providers")
    if isinstance(providers, dict):
        result["providers"] = {
            str(name).lower(): _normalize_keys(values)
            if isinstance(values, dict)
            else values
            for name, values in providers.items()
        }
    for section in ("testing", "benchmark"):
        if isinstance(data.get(section), dict):
            result[section] = _normalize_keys(data[section])
    return result


def environment_config(*, explicit: bool = False) -> dict[str, t.Any]:
    testing = TestingEnv().to_config(explicit=explicit)
    benchmark = BenchmarkEnv().to_config(explicit=explicit)
    providers = {
        name: env_model().to_config(explicit=explicit)
        for name, env_model in _PROVIDER_ENV.items()
    }
    if not explicit:
        providers["memory"] = {}
    return {"providers": providers, "testing": testing, "benchmark": benchmark}


def find_config_file(base: Path | None = None) -> Path | None:
    base = base or Path.cwd()
    for candidate in CONFIG_SEARCH_PATHS:
        path = base / candidate
        if path.is_file():
            return path
    return None


def read_config_file(path: Path) -> dict[str, t.Any] | None:
    try:
        raw = path.read_bytes()
        if path.suffix == ".json":
            data = msgspec.json.decode(raw)
        else:
            data = msgspec.yaml.decode(raw)
    except (OSError, msgspec.DecodeError) as e:
        logger.error(f"Error loading config file {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.error(f"Config file {path} does not contain a mapping")
        return None
    return normalize_file_config(data)


class Config:
    def __init__(self, data: dict[str, t.Any], path: Path | None = None) -> None:
        self.data = data
        self.path = path

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        config_path = Path(path) if path else find_config_file()
        file_config: dict[str, t.Any] | None = None
        if config_path is None:
            logger.warning(
                "No config file found, using environment variables and defaults"
            )
        else:
            file_config = read_config_file(config_path)
            if file_config is not None:
                logger.debug(f"Loaded configuration from {config_path}")
        data = deep_update(
            environment_config(),
            file_config or {},
            environment_config(explicit=True),
        )
        return cls(data, path=config_path if file_config is not None else None)

    @property
    def providers(self) -> dict[str, dict[str, t.Any]]:
        return self.data.get("providers") or {}

    def get_provider(self, name: str) -> dict[str, t.Any]:
        provider = self.providers.get(name)
        if provider is None:
            raise ConfigNotFoundError(name)
        return provider

    def get_all_providers(self) -> list[str]:
        return list(self.providers)

    def validate_provider(self, name: str) -> bool:
        provider = self.get_provider(name)
        validator = _VALIDATORS.get(name)
        if validator is None:
            msg = f"No validator found for provider '{name}'"
            raise ConfigValidationError(msg, provider=name)
        if not validator(provider):
            msg = f"Invalid configuration for provider '{name}'"
            raise ConfigValidationError(msg, provider=name)
        return True

    def get_testing_config(self) -> TestingSettings:
        return TestingSettings.model_validate(self.data.get("testing") or {})

    def get_benchmark_config(self) -> BenchmarkSettings:
        return BenchmarkSettings.model_validate(self.data.get("benchmark") or {})
