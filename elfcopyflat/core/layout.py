"""
Layout Planner
===============

Computes the address span of the flat image from the selected segments.

The image starts at the lowest selected virtual address (or a caller
supplied base below it) and ends one past the highest
``virtual_address + memory_size``.  Overlapping segments are reported
by :func:`find_overlaps` but not resolved here: the assembler copies in
table order, so the later segment's bytes win in any shared range.
"""

from __future__ import annotations

from typing import Optional, Sequence

from elfcopyflat.core.errors import LayoutError
from elfcopyflat.core.models import (
    DEFAULT_MAX_IMAGE_SIZE,
    Layout,
    SegmentDescriptor,
    SegmentOverlap,
)


def plan_layout(
    selection: Sequence[SegmentDescriptor],
    *,
    base_address: Optional[int] = None,
    require_non_empty: bool = False,
    max_image_size: Optional[int] = DEFAULT_MAX_IMAGE_SIZE,
) -> Layout:
    """Compute base address and total size for *selection*.

    Args:
        selection: Selected segments, in table order.
        base_address: Explicit address of image byte 0.  Must not be above
            the lowest selected address.  ``None`` uses that address.
        require_non_empty: Fail instead of returning a zero-size layout.
        max_image_size: Fail if the image would be larger than this.
            ``None`` disables the check.

    Returns:
        The :class:`Layout`.  An empty selection gives a zero-size layout
        at ``base_address`` (or 0).

    Raises:
        LayoutError: On an empty or zero-size span when output is
            required, a base above the first segment, or an oversized
            image.
    """
    if not selection:
        if require_non_empty:
            raise LayoutError("no segments selected, image would be empty")
        base = base_address or 0
        return Layout(base_address=base, end_address=base, total_size=0)

    lowest = min(seg.virtual_address for seg in selection)
    end = max(seg.end_address for seg in selection)

    if base_address is None:
        base = lowest
    elif base_address > lowest:
        raise LayoutError(
            f"base address 0x{base_address:x} is above the lowest selected "
            f"segment address 0x{lowest:x}"
        )
    else:
        base = base_address

    total = end - base
    if total == 0 and require_non_empty:
        raise LayoutError(
            f"selected segments span zero bytes at 0x{base:x}"
        )
    if max_image_size is not None and total > max_image_size:
        raise LayoutError(
            f"image would be 0x{total:x} bytes "
            f"(0x{base:x}..0x{end:x}), above the 0x{max_image_size:x} byte limit"
        )

    return Layout(base_address=base, end_address=end, total_size=total)


def find_overlaps(selection: Sequence[SegmentDescriptor]) -> list[SegmentOverlap]:
    """Return every pair of selected segments sharing memory addresses.

    Pairs are reported in table order (``earlier`` before ``later``).
    Segments with a zero memory size occupy no addresses.
    """
    overlaps: list[SegmentOverlap] = []
    for i, first in enumerate(selection):
        for second in selection[i + 1:]:
            start = max(first.virtual_address, second.virtual_address)
            end = min(first.end_address, second.end_address)
            if start < end:
                overlaps.append(SegmentOverlap(
                    earlier=first.index,
                    later=second.index,
                    start=start,
                    end=end,
                ))
    return overlaps
