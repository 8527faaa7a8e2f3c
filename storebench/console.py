import os
import re
import sys

from contextlib import suppress
from rich.console import Console as RichConsole
from rich.errors import MarkupError
from rich.style import Style
from rich.text import Text
from typing import Any, Literal

__all__ = ["Console", "console"]

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def _plain_output() -> bool:
    """Detect environments where colour and markup should be stripped."""
    if os.environ.get("NO_COLOR") or (
        os.environ.get("CI") and not os.environ.get("STOREBENCH_FORCE_COLOR")
    ):
        return True
    stream = sys.stdout
    return hasattr(stream, "isatty") and not stream.isatty()


def _console_width() -> int | None:
    env_width = os.environ.get("CONSOLE_WIDTH")
    if env_width is not None:
        with suppress(ValueError, TypeError):
            return int(env_width)
    return None


class Console(RichConsole):
    """Rich console that degrades to plain text off a terminal.

    Width can be pinned with the ``CONSOLE_WIDTH`` environment variable;
    otherwise the terminal width is auto-detected.
    """

    def __init__(self, plain: bool | None = None, **kwargs: Any) -> None:
        plain = _plain_output() if plain is None else plain
        color_system: (
            Literal["auto", "standard", "256", "truecolor", "windows"] | None
        ) = None if plain else "auto"
        kwargs.setdefault("width", _console_width())
        if plain:
            kwargs["force_terminal"] = False
        super().__init__(no_color=plain, color_system=color_system, **kwargs)
        self._plain_mode = plain

    def print(  # type: ignore[override]
        self,
        *objects: Any,
        sep: str = " ",
        end: str = "\n",
        style: Style | str | None = None,
        highlight: bool | None = None,
        **kwargs: Any,
    ) -> None:
        if not self._plain_mode:
            return super().print(
                *objects, sep=sep, end=end, style=style, highlight=highlight, **kwargs
            )

        processed: list[object] = []
        for obj in objects:
            if isinstance(obj, str):
                try:
                    text = Text.from_markup(obj).plain
                except MarkupError:
                    text = obj
                processed.append(_ANSI_RE.sub("", text))
            else:
                processed.append(obj)
        kwargs.setdefault("markup", False)
        return super().print(
            *processed,
            sep=sep,
            end=end,
            style=style,
            highlight=False if highlight is None else highlight,
            **kwargs,
        )


console = Console()
