"""
elfcopyflat Conversion Engine
==============================

Orchestrates the flattening pipeline:

    1. Read the ELF identification and file header
    2. Decode the program header table
    3. Select loadable segments matching the permission filter
    4. Compute the image layout and check for overlapping segments
    5. Assemble the flat image
    6. Hand the image to a sink

The run is strictly linear (``PipelineStage``).  Any failure aborts it
immediately with a :class:`~elfcopyflat.core.errors.FlatCopyError`
naming the stage; nothing is written unless every stage succeeded.

The engine holds no per-run state.  Options are passed into every call,
so two runs with the same input bytes and options produce the same image.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from shared.logger import FlatLogger

from elfcopyflat.core.assembler import assemble
from elfcopyflat.core.errors import FlatCopyError, ImageIOError, LayoutError
from elfcopyflat.core.layout import find_overlaps, plan_layout
from elfcopyflat.core.models import (
    CopyOptions,
    FlatCopyResult,
    OverlapPolicy,
    PipelineStage,
)
from elfcopyflat.core.selection import select_segments
from elfcopyflat.output.sink import FileSink, ImageSink
from elfcopyflat.parsers.elf_parser import (
    ET_NAMES,
    parse_program_headers,
    read_header,
)


class FlatCopyEngine:
    """Runs the ELF-to-flat-binary pipeline.

    Usage::

        engine = FlatCopyEngine()
        result = engine.run(data, CopyOptions())
        image = result.image

    Or straight to disk::

        engine.convert_file("kernel.elf", "kernel.bin", CopyOptions())
    """

    def __init__(self, logger: FlatLogger | None = None) -> None:
        """Initialise the engine.

        Args:
            logger: Logger instance.  A new one is created if not provided.
        """
        self._logger: FlatLogger = logger or FlatLogger("engine")

    @contextmanager
    def _step(self, name: str, reached: PipelineStage) -> Iterator[None]:
        """Run one pipeline stage, ending in state *reached*.

        Log records emitted inside carry *name*, and a
        :class:`FlatCopyError` escaping the block is tagged with it unless
        it already names a more specific stage than its class default.
        """
        with self._logger.stage(name):
            try:
                yield
            except FlatCopyError as exc:
                if exc.stage == exc.default_stage:
                    exc.stage = name
                raise
            self._logger.debug("State -> %s", reached.name)

    # ------------------------------------------------------------------ #
    #  Pipeline
    # ------------------------------------------------------------------ #

    def run(self, source: bytes, options: CopyOptions) -> FlatCopyResult:
        """Parse *source* and build the flat image in memory.

        Args:
            source: Complete ELF file contents.
            options: Selection predicate and layout policy.

        Returns:
            A :class:`FlatCopyResult` in stage ``ASSEMBLED``.

        Raises:
            FormatError: Malformed header or program header table.
            SelectionError: Nothing selected while output is required.
            LayoutError: Empty, oversized, mis-based or (under the
                ``error`` policy) overlapping layout.
            ImageIOError: A segment reads past the end of *source*.
        """
        log = self._logger

        with self._step("header", PipelineStage.HEADER_PARSED):
            table = read_header(source)
            log.debug(
                "%s %s, %d program headers of %d bytes at 0x%x",
                table.identity.describe(),
                ET_NAMES.get(table.file_type, str(table.file_type)),
                table.entry_count,
                table.entry_size,
                table.offset,
            )

        with self._step("program headers", PipelineStage.TABLE_PARSED):
            segments = parse_program_headers(source, table)

        with self._step("selection", PipelineStage.SEGMENTS_SELECTED):
            selection = select_segments(
                segments,
                options.predicate,
                require_non_empty=options.require_non_empty,
            )
            log.debug(
                "Selected %d of %d segments with %s",
                len(selection),
                len(segments),
                options.predicate.describe(),
            )
            if not selection:
                log.warning("No loadable segments selected, image is empty")

        with self._step("layout", PipelineStage.LAYOUT_COMPUTED):
            layout = plan_layout(
                selection,
                base_address=options.base_address,
                require_non_empty=options.require_non_empty,
                max_image_size=options.max_image_size,
            )
            overlaps = find_overlaps(selection)
            for ov in overlaps:
                log.warning(
                    "Segment %d overlaps segment %d at 0x%x..0x%x (%d bytes)",
                    ov.earlier,
                    ov.later,
                    ov.start,
                    ov.end,
                    ov.size,
                )
            if overlaps and options.overlap_policy is OverlapPolicy.ERROR:
                raise LayoutError(
                    f"{len(overlaps)} overlapping segment pair(s), first at "
                    f"0x{overlaps[0].start:x} (segments {overlaps[0].earlier} "
                    f"and {overlaps[0].later})"
                )
            log.debug(
                "Base address 0x%x, image size 0x%x",
                layout.base_address,
                layout.total_size,
            )

        with self._step("assembly", PipelineStage.ASSEMBLED), log.timed("assemble"):
            image = assemble(source, selection, layout)

        return FlatCopyResult(
            identity=table.identity,
            table=table,
            segments=segments,
            selection=selection,
            layout=layout,
            overlaps=overlaps,
            stage=PipelineStage.ASSEMBLED,
            image=image,
        )

    def convert(
        self, source: bytes, options: CopyOptions, sink: ImageSink
    ) -> FlatCopyResult:
        """Run the pipeline and write the image to *sink*.

        The sink is only called once the image is complete.

        Returns:
            The result in stage ``WRITTEN``.
        """
        result = self.run(source, options)
        with self._step("output", PipelineStage.WRITTEN):
            sink.write(result.image)
        return result.with_stage(PipelineStage.WRITTEN)

    def convert_file(
        self,
        input_path: str | Path,
        output_path: str | Path,
        options: CopyOptions,
    ) -> FlatCopyResult:
        """Read *input_path*, flatten it and write *output_path* atomically.

        Raises:
            ImageIOError: If the input cannot be read or the output cannot
                be written.
            FlatCopyError: Any other pipeline failure.
        """
        path = Path(input_path)
        try:
            source = path.read_bytes()
        except OSError as exc:
            raise ImageIOError(
                f"cannot read {path}: {exc.strerror or exc}",
                stage="input",
            ) from exc

        self._logger.info("Flattening %s (%d bytes)", path, len(source))
        result = self.convert(source, options, FileSink(output_path))
        self._logger.info(
            "Wrote %d bytes to %s (base 0x%x)",
            len(result.image),
            output_path,
            result.layout.base_address,
        )
        return result

