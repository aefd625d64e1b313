"""
Flat Assembler
===============

Builds the flat image: a zero-filled buffer of ``layout.total_size``
bytes into which each selected segment's file bytes are copied at
``virtual_address - base``.

The part of a segment beyond its file size (``.bss`` and similar) and
any gap between segments are left as zero bytes.  Segments are copied
in table order, so where two overlap the later one wins.
"""

from __future__ import annotations

from typing import Sequence

from elfcopyflat.core.errors import ImageIOError, LayoutError
from elfcopyflat.core.models import Layout, SegmentDescriptor


def assemble(
    source: bytes,
    selection: Sequence[SegmentDescriptor],
    layout: Layout,
) -> bytes:
    """Copy *selection* out of *source* into a new flat image.

    Descriptors need not come from the parser: at most
    ``min(file_size, memory_size)`` bytes are copied per segment, so file
    data never spills past a segment's memory size.  Segments with no
    file bytes read nothing, whatever their ``file_offset``.

    Args:
        source: Complete input file contents; never modified.
        selection: Segments to copy, in table order.
        layout: Span computed by :func:`~elfcopyflat.core.layout.plan_layout`
            for the same selection.

    Returns:
        The finished image, ``layout.total_size`` bytes long.

    Raises:
        LayoutError: If the image buffer cannot be allocated.
        ImageIOError: If a segment's file bytes extend past the end of
            *source*.
    """
    try:
        image = bytearray(layout.total_size)
    except (MemoryError, OverflowError) as exc:
        raise LayoutError(
            f"cannot allocate a 0x{layout.total_size:x} byte image for "
            f"0x{layout.base_address:x}..0x{layout.end_address:x}"
        ) from exc

    with memoryview(source) as view:
        for seg in selection:
            count = min(seg.file_size, seg.memory_size)
            if count == 0:
                continue
            src_end = seg.file_offset + count
            if src_end > len(view):
                raise ImageIOError(
                    f"segment {seg.index} reads 0x{seg.file_offset:x}..0x{src_end:x} "
                    f"past the end of the 0x{len(view):x} byte input"
                )
            dest = layout.offset_of(seg.virtual_address)
            image[dest:dest + count] = view[seg.file_offset:src_end]

    return bytes(image)
