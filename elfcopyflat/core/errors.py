"""
elfcopyflat Error Taxonomy
===========================

Every failure aborts the run at the stage that detects it.  Each
exception records that stage so the command-line layer can report
where the conversion stopped.
"""

from __future__ import annotations

from typing import Optional


class FlatCopyError(Exception):
    """Base class for all conversion failures.

    Attributes:
        stage: Name of the pipeline stage that failed (``"header"``,
               ``"program headers"``, ``"selection"``, ``"layout"``,
               ``"assembly"`` or ``"output"``).  The engine fills it in
               if the raising code did not.
    """

    default_stage: str = "conversion"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        return self.message


class FormatError(FlatCopyError):
    """Malformed identification bytes or program header table geometry."""

    default_stage = "header"


class SelectionError(FlatCopyError):
    """No segment satisfies the predicate while output is required."""

    default_stage = "selection"


class LayoutError(FlatCopyError):
    """Degenerate or policy-violating address span."""

    default_stage = "layout"


class ImageIOError(FlatCopyError, OSError):
    """Read beyond the source buffer, or failure writing the image."""

    default_stage = "assembly"
