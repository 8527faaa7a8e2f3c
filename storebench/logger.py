"""Loguru configuration for storebench.

Modules log through ``loguru.logger`` directly; this module only decides
where records go and how they look. Under pytest the default sink is removed
so test output stays quiet unless a test adds its own sink.
"""

import os
import sys

import typing as t
from loguru import logger
from pydantic import BaseModel

__all__ = ["LoggerSettings", "configure_logger", "logger"]

_testing: bool = "pytest" in sys.modules


class LoggerSettings(BaseModel):
    verbose: bool = False
    log_level: str = "INFO"
    colorize: bool = True
    serialize: bool = False
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }

    @classmethod
    def from_env(cls, **values: t.Any) -> "LoggerSettings":
        env_level = os.getenv("LOG_LEVEL")
        if env_level and "log_level" not in values:
            values["log_level"] = env_level.upper()
        if os.getenv("NO_COLOR") and "colorize" not in values:
            values["colorize"] = False
        return cls(**values)

    @property
    def level(self) -> str:
        return "DEBUG" if self.verbose else self.log_level.upper()


def _patch_name(record: dict[str, t.Any]) -> str:
    name = record["name"] or ""
    mod_name = name.removeprefix("storebench.")
    if record["extra"].get("provider"):
        return f"{mod_name}:{record['extra']['provider']}"
    return mod_name


def configure_logger(settings: LoggerSettings | None = None) -> None:
    """Replace loguru's default handler with the storebench sink."""
    settings = settings or LoggerSettings.from_env()
    logger.remove()

    def _patch(record: dict[str, t.Any]) -> None:
        record["extra"]["mod_name"] = _patch_name(record)

    logger.configure(patcher=_patch)  # type: ignore[arg-type]
    if _testing:
        return
    logger.add(
        sys.stderr,
        level=settings.level,
        format="".join(settings.format.values()),
        colorize=settings.colorize,
        serialize=settings.serialize,
        backtrace=False,
        diagnose=False,
    )
    logger.debug(f"Logger configured at level {settings.level}")
