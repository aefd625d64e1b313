"""
elfcopyflat Console Output
===========================

Rich-powered terminal display of a conversion: the program header
table with the selected segments highlighted, any overlapping address
ranges, and the resulting image layout.  Shown with ``--verbose``.
"""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table

from shared.console import FlatConsole

from elfcopyflat.core.models import (
    FlatCopyResult,
    Layout,
    ProgramHeaderTable,
    SegmentDescriptor,
    SegmentOverlap,
)
from elfcopyflat.parsers.elf_parser import ET_NAMES, segment_type_name


class FlatCopyConsoleOutput:
    """Rich terminal display for :class:`FlatCopyResult`.

    Usage::

        output = FlatCopyConsoleOutput()
        output.display(result)
    """

    def __init__(self, console: FlatConsole | None = None) -> None:
        self._console: FlatConsole = console or FlatConsole()

    def display(self, result: FlatCopyResult) -> None:
        """Display the complete conversion result."""
        self.display_header(result.table)
        self.display_segments(result.segments, set(result.selected_indices))
        if result.overlaps:
            self.display_overlaps(result.overlaps)
        self.display_layout(result.layout, len(result.selection))

    def display_header(self, table: ProgramHeaderTable) -> None:
        lines = [
            f"[bold]Format:[/bold]       {table.identity.describe()}",
            f"[bold]Type:[/bold]         "
            f"{ET_NAMES.get(table.file_type, str(table.file_type))}",
            f"[bold]Machine:[/bold]      {table.machine}",
            f"[bold]Entry Point:[/bold]  0x{table.entry_point:x}",
            f"[bold]Phdrs:[/bold]        {table.entry_count} x "
            f"{table.entry_size} bytes at 0x{table.offset:x}",
        ]
        self._console.print(Panel(
            "\n".join(lines),
            title="[bold bright_cyan]ELF Header[/bold bright_cyan]",
            border_style="bright_cyan",
            expand=False,
        ))

    def display_segments(
        self,
        segments: list[SegmentDescriptor],
        selected: set[int],
    ) -> None:
        """Render the program header table, one row per entry.

        Selected segments are marked in the first column; everything else
        is dimmed.
        """
        tbl = Table(
            title="Program Headers",
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        tbl.add_column("", width=1)
        tbl.add_column("#", justify="right")
        tbl.add_column("Type")
        tbl.add_column("Flags")
        tbl.add_column("Offset", justify="right")
        tbl.add_column("FileSiz", justify="right")
        tbl.add_column("VirtAddr", justify="right")
        tbl.add_column("MemSiz", justify="right")

        for seg in segments:
            chosen = seg.index in selected
            tbl.add_row(
                "[bold green]*[/bold green]" if chosen else "",
                str(seg.index),
                segment_type_name(seg.kind),
                seg.flags.to_rwx(),
                f"0x{seg.file_offset:x}",
                f"0x{seg.file_size:x}",
                f"0x{seg.virtual_address:x}",
                f"0x{seg.memory_size:x}",
                style=None if chosen else "dim",
            )

        self._console.print(tbl)

    def display_overlaps(self, overlaps: list[SegmentOverlap]) -> None:
        for ov in overlaps:
            self._console.warning(
                f"Segments {ov.earlier} and {ov.later} overlap at "
                f"0x{ov.start:x}..0x{ov.end:x}; segment {ov.later} wins"
            )

    def display_layout(self, layout: Layout, count: int) -> None:
        self._console.info(
            f"{count} segment(s), base 0x{layout.base_address:x}, "
            f"end 0x{layout.end_address:x}, "
            f"{layout.total_size:,} bytes"
        )
