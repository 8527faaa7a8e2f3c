import pytest
import typing as t
from loguru import logger

from storebench.logger import LoggerSettings, _patch_name, configure_logger


class TestLoggerSettings:
    def test_defaults(self) -> None:
        settings = LoggerSettings()

        assert not settings.verbose
        assert settings.log_level == "INFO"
        assert settings.level == "INFO"
        assert settings.serialize is False
        assert list(settings.format) == [
            "time",
            "level",
            "sep",
            "name",
            "line",
            "message",
        ]

    def test_verbose_forces_debug(self) -> None:
        assert LoggerSettings(verbose=True, log_level="ERROR").level == "DEBUG"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("NO_COLOR", "1")

        settings = LoggerSettings.from_env()

        assert settings.level == "WARNING"
        assert settings.colorize is False

    def test_explicit_values_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "warning")

        assert LoggerSettings.from_env(log_level="ERROR").level == "ERROR"


class TestPatchName:
    def test_strips_package_prefix(self) -> None:
        record: dict[str, t.Any] = {"name": "storebench.testing.runner", "extra": {}}

        assert _patch_name(record) == "testing.runner"

    def test_appends_provider(self) -> None:
        record: dict[str, t.Any] = {
            "name": "storebench.providers.local",
            "extra": {"provider": "local"},
        }

        assert _patch_name(record) == "providers.local:local"


class TestConfigureLogger:
    def test_patcher_adds_module_name(self) -> None:
        configure_logger(LoggerSettings())
        records: list[dict[str, t.Any]] = []
        handler_id = logger.add(lambda m: records.append(m.record), level="DEBUG")
        try:
            logger.bind(provider="memory").info("hello")
        finally:
            logger.remove(handler_id)

        assert records[0]["extra"]["mod_name"].endswith(":memory")
        assert records[0]["message"] == "hello"
