"""
elfcopyflat Console Interface
==============================

Thin wrapper over :class:`rich.console.Console` with the tool's colour
theme and severity-prefixed message helpers.  Output goes to stderr so
that stdout stays free for ``--json`` summaries.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

_FLAT_THEME = Theme(
    {
        "flat.success": "bold green",
        "flat.warning": "bold yellow",
        "flat.error": "bold red",
        "flat.info": "bold bright_blue",
    }
)

_PREFIXES = {
    "success": "[✔] OK:",
    "warning": "[⚠] WARNING:",
    "error": "[✘] ERROR:",
    "info": "[ℹ] INFO:",
}


class FlatConsole:
    """Unified console interface.

    Message text is printed literally; Rich markup is only interpreted in
    renderables passed to :meth:`print`.

    Usage::

        con = FlatConsole()
        con.info("3 segment(s), base 0x1000")
        con.error("layout failed: image too large")
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        self._console = Console(
            theme=_FLAT_THEME,
            quiet=quiet,
            record=record,
            stderr=True,
            highlight=False,
        )

    @property
    def rich(self) -> Console:
        return self._console

    def _message(self, kind: str, message: str) -> None:
        self._console.print(
            f"[flat.{kind}]{escape(_PREFIXES[kind])}[/flat.{kind}] {escape(message)}"
        )

    def success(self, message: str) -> None:
        self._message("success", message)

    def warning(self, message: str) -> None:
        self._message("warning", message)

    def error(self, message: str) -> None:
        self._message("error", message)

    def info(self, message: str) -> None:
        self._message("info", message)

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)
