"""
elfcopyflat Structured Logger
==============================

:class:`FlatLogger` sends every record to two places:

* stderr, through a Rich handler, for people;
* optionally a rotating log file, as plain text or JSON lines.

stdout is never written to by the logger, so ``--json`` summaries stay
parseable.  Records carry the pipeline stage that was active when they
were emitted (see :meth:`FlatLogger.stage`).

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(stage)s | %(message)s"
_RESERVED_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})


class _JSONLineFormatter(logging.Formatter):
    """One JSON object per record::

        {"ts": "...", "level": "WARNING", "logger": "elfcopyflat.engine",
         "stage": "layout", "message": "...", "fields": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stage": getattr(record, "stage", None),
            "message": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(level: int) -> RichHandler:
    handler = RichHandler(
        console=Console(theme=_LOG_THEME, stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(level)
    return handler


def _file_handler(
    path: Path, level: int, *, json_lines: bool, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_lines:
        handler.setFormatter(_JSONLineFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(fmt=_TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        )
    return handler


class FlatLogger:
    """Logger bound to one component of the tool.

    Usage::

        log = FlatLogger("engine", log_file="elfcopyflat.log", json_logs=True)
        with log.stage("layout"):
            log.debug("Base address 0x%x", base, segments=3)

    Keyword arguments other than the standard ``exc_info``/``stack_info``/
    ``stacklevel`` are collected into the record's ``fields`` mapping,
    which the JSON file output keeps.

    Args:
        component:       Suffix of the ``elfcopyflat.<component>`` logger.
        log_level:       Minimum severity name.
        log_file:        Rotating log file, ``None`` or ``""`` for none.
        json_logs:       Write the log file as JSON lines.
        max_bytes:       Log-file size before rotation.
        backup_count:    Rotated files to keep.
        console_output:  Attach the Rich stderr handler.
    """

    def __init__(
        self,
        component: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        level = getattr(logging, log_level.upper(), logging.INFO)
        self._stage: str | None = None
        self._logger = logging.getLogger(f"elfcopyflat.{component}")
        self._logger.setLevel(level)
        self._logger.propagate = False
        # loggers are process-global; drop handlers from an earlier instance
        self._logger.handlers.clear()

        if console_output:
            self._logger.addHandler(_console_handler(level))
        if log_file:
            self._logger.addHandler(_file_handler(
                Path(log_file),
                level,
                json_lines=json_logs,
                max_bytes=max_bytes,
                backup_count=backup_count,
            ))

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def current_stage(self) -> str | None:
        return self._stage

    @contextmanager
    def stage(self, name: str) -> Iterator[FlatLogger]:
        """Tag every record emitted inside the block with *name*."""
        previous, self._stage = self._stage, name
        try:
            yield self
        finally:
            self._stage = previous

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log how long the block took, at DEBUG level."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.debug(
                "%s took %.3f ms", label, (time.perf_counter() - start) * 1000.0
            )

    def _log(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        passthrough = {k: kwargs.pop(k) for k in list(kwargs) if k in _RESERVED_KWARGS}
        extra = {"stage": self._stage or "-", "fields": kwargs or None}
        self._logger.log(level, msg, *args, extra=extra, **passthrough)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, args, kwargs)
