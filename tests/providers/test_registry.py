"""Tests for provider lookup and construction."""

import pytest
import typing as t

from storebench.errors import (
    ConfigValidationError,
    ProviderNotInstalledError,
    UnknownProviderError,
)
from storebench.providers import (
    ProviderEntry,
    available_providers,
    create_and_initialize,
    create_provider,
    get_provider_class,
    get_provider_entry,
    provider_from_config,
)
from storebench.providers.local import Storage as LocalStorage
from storebench.providers.memory import Storage as MemoryStorage


class MockConfigSource:
    def __init__(self, providers: dict[str, dict[str, t.Any]]) -> None:
        self.providers = providers
        self.validated: list[str] = []

    def validate_provider(self, name: str) -> bool:
        self.validated.append(name)
        if name not in self.providers:
            msg = f"Invalid configuration for provider '{name}'"
            raise ConfigValidationError(msg, provider=name)
        return True

    def get_provider(self, name: str) -> dict[str, t.Any]:
        return self.providers[name]


class TestRegistry:
    def test_available_providers(self) -> None:
        assert available_providers() == [
            "aws",
            "gcp",
            "azure",
            "minio",
            "local",
            "memory",
        ]

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("aws", "aws"), ("S3", "aws"), ("gcs", "gcp"), ("Local", "local")],
    )
    def test_lookup_is_case_insensitive_with_aliases(
        self, name: str, expected: str
    ) -> None:
        assert get_provider_entry(name).name == expected

    def test_unknown_provider(self) -> None:
        with pytest.raises(UnknownProviderError) as exc_info:
            get_provider_entry("dropbox")

        assert str(exc_info.value) == (
            "Unknown storage provider: dropbox. "
            "Available providers: aws, gcp, azure, minio, local, memory"
        )
        assert exc_info.value.available == available_providers()

    def test_get_provider_class(self) -> None:
        assert get_provider_class("local") is LocalStorage
        assert get_provider_class("memory") is MemoryStorage

    def test_missing_package(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "storebench.providers.provider_registry",
            [ProviderEntry(name="aws", module="storebench.providers.not_there")],
        )

        with pytest.raises(ProviderNotInstalledError, match="Provider 'aws'"):
            get_provider_class("aws")

    def test_create_provider(self, tmp_path) -> None:
        provider = create_provider("local", {"base_path": str(tmp_path)})

        assert isinstance(provider, LocalStorage)
        assert not provider.initialized

    @pytest.mark.asyncio
    async def test_create_and_initialize(self) -> None:
        provider = await create_and_initialize("memory", {})

        assert provider.initialized


class TestProviderFromConfig:
    @pytest.mark.asyncio
    async def test_builds_and_initializes(self, tmp_path) -> None:
        source = MockConfigSource({"local": {"base_path": str(tmp_path)}})

        provider = await provider_from_config("LOCAL", source)

        assert isinstance(provider, LocalStorage)
        assert provider.initialized
        assert source.validated == ["local"]

    @pytest.mark.asyncio
    async def test_alias_resolves_to_configured_name(self) -> None:
        source = MockConfigSource({})

        with pytest.raises(ConfigValidationError, match="provider 'aws'"):
            await provider_from_config("s3", source)

        assert source.validated == ["aws"]

    @pytest.mark.asyncio
    async def test_unknown_provider_is_not_validated(self) -> None:
        source = MockConfigSource({})

        with pytest.raises(UnknownProviderError):
            await provider_from_config("dropbox", source)

        assert source.validated == []
