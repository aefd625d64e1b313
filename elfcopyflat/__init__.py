"""
elfcopyflat -- ELF to Flat Binary
==================================

Copies the loadable segments (``PT_LOAD`` program headers) of an ELF
executable, shared object or core file into a contiguous flat memory
image.  Only the program header table is read, so stripped files work.

Capabilities:
    - ELF32 and ELF64, little- and big-endian
    - Permission filters (require / exclude any of ``rwx``)
    - Zero-filled gaps and ``.bss``-style tails
    - Overlap detection (later segment wins, or reject)
    - Atomic output: the destination holds the whole image or nothing

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
"""

from elfcopyflat.core.engine import FlatCopyEngine
from elfcopyflat.core.errors import (
    FlatCopyError,
    FormatError,
    ImageIOError,
    LayoutError,
    SelectionError,
)
from elfcopyflat.core.models import (
    CopyOptions,
    FlatCopyResult,
    OverlapPolicy,
    SegmentFlag,
    SelectionPredicate,
)

__version__ = "1.0.0"
__all__ = [
    "FlatCopyEngine",
    "FlatCopyResult",
    "CopyOptions",
    "OverlapPolicy",
    "SegmentFlag",
    "SelectionPredicate",
    "FlatCopyError",
    "FormatError",
    "SelectionError",
    "LayoutError",
    "ImageIOError",
]
