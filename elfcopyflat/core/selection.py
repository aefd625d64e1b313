"""
Segment selection: loadable program headers matching a permission filter.
"""

from __future__ import annotations

from typing import Iterable

from elfcopyflat.core.errors import SelectionError
from elfcopyflat.core.models import SegmentDescriptor, SelectionPredicate


def select_segments(
    segments: Iterable[SegmentDescriptor],
    predicate: SelectionPredicate,
    *,
    require_non_empty: bool = False,
) -> list[SegmentDescriptor]:
    """Return the loadable segments accepted by *predicate*.

    Table order is preserved.  Non-loadable entries are never selected,
    whatever their flags.

    Args:
        segments: Decoded program header table.
        predicate: Permission filter.
        require_non_empty: Raise instead of returning an empty list.

    Raises:
        SelectionError: If nothing matches and *require_non_empty* is set.
    """
    selected = [
        seg for seg in segments
        if seg.is_loadable and predicate.matches(seg.flags)
    ]
    if not selected and require_non_empty:
        raise SelectionError(
            f"no loadable segment matches {predicate.describe()}"
        )
    return selected
