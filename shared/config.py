"""
elfcopyflat Configuration Management
=====================================

Project-wide defaults for the flattener, read from a TOML file with two
tables::

    [global]                     [flatcopy]
    log_level = "INFO"           require_non_empty = false
    log_file = ""                overlap_policy = "last-wins"
    log_json = false             max_image_size = 1073741824
    debug = false

Command-line flags always take precedence; the file only supplies
defaults so that a project can pin its flattening policy once.

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# Looked up when no path is given; absence is not an error.
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

_OVERLAP_POLICIES = ("last-wins", "error")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=False, slots=True)
class FlatCopyConfig:
    """Flattening policy used when the matching flag is not given.

    Attributes:
        require_non_empty: Fail instead of writing an empty image.
        overlap_policy: ``"last-wins"`` or ``"error"``.
        max_image_size: Largest image in bytes; ``0`` means unlimited.
    """

    require_non_empty: bool = False
    overlap_policy: str = "last-wins"
    max_image_size: int = 1_073_741_824  # 1 GiB

    def __post_init__(self) -> None:
        if self.overlap_policy not in _OVERLAP_POLICIES:
            raise ValueError(
                f"flatcopy.overlap_policy must be one of "
                f"{', '.join(_OVERLAP_POLICIES)}, not {self.overlap_policy!r}"
            )
        if self.max_image_size < 0:
            raise ValueError("flatcopy.max_image_size must not be negative")


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging settings."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"global.log_level {self.log_level!r} is not a log level")


@dataclass(frozen=False, slots=True)
class AppConfig:
    """Both configuration tables.

    Usage:
        >>> config = AppConfig.load()                  # project default, if any
        >>> config = AppConfig.load("elfcopyflat.toml")
        >>> config.flatcopy.overlap_policy
        'last-wins'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    flatcopy: FlatCopyConfig = field(default_factory=FlatCopyConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> AppConfig:
        """Read *path*, or ``config.toml`` at the project root.

        Keys missing from the file keep their defaults and unknown keys
        are ignored.

        Raises:
            FileNotFoundError: *path* was given and does not exist.
            ValueError: The file is not valid TOML, or a value has the
                wrong type or is out of range.  ``tomllib.TOMLDecodeError``
                is a ``ValueError``.
        """
        if path is None:
            if not _DEFAULT_CONFIG_PATH.exists():
                return cls()
            config_path = _DEFAULT_CONFIG_PATH
        else:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=_section(GlobalConfig, "global", raw),
            flatcopy=_section(FlatCopyConfig, "flatcopy", raw),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _section(cls: type, name: str, raw: dict[str, Any]) -> Any:
    """Build dataclass *cls* from table *name*, type-checking known keys."""
    table = raw.get(name, {})
    if not isinstance(table, dict):
        raise ValueError(f"[{name}] must be a table")

    values: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in table:
            continue
        value = table[f.name]
        expected = type(f.default)
        # bool is an int subclass; do not let true/false pass as sizes
        if not isinstance(value, expected) or (
            expected is int and isinstance(value, bool)
        ):
            raise ValueError(
                f"{name}.{f.name} must be {expected.__name__}, "
                f"not {type(value).__name__}"
            )
        values[f.name] = value
    return cls(**values)
