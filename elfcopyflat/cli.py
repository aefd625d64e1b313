"""
elfcopyflat CLI -- ELF to Flat Binary
======================================

Click-based command-line interface.  Copies the loadable segments of an
ELF file into a flat binary, optionally filtered by permission flags.

Usage::

    # Every loadable segment
    elfcopyflat kernel.elf kernel.bin

    # Only executable segments
    elfcopyflat kernel.elf text.bin --if x

    # Everything except writable segments, image starting at 0x80000000
    elfcopyflat kernel.elf rom.bin --if-not w --base 0x80000000

    # Machine-readable summary on stdout
    elfcopyflat kernel.elf kernel.bin --json

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import json
import sys
from typing import Optional

import click

from shared.config import AppConfig
from shared.console import FlatConsole
from shared.logger import FlatLogger

from elfcopyflat.core.engine import FlatCopyEngine
from elfcopyflat.core.errors import FlatCopyError
from elfcopyflat.core.models import (
    CopyOptions,
    OverlapPolicy,
    SegmentFlag,
    SelectionPredicate,
)
from elfcopyflat.output.console import FlatCopyConsoleOutput


# ---------------------------------------------------------------------------
# Parameter types
# ---------------------------------------------------------------------------

class FlagsParamType(click.ParamType):
    """A set of segment permissions written as letters among ``rwx``."""

    name = "FLAGS"

    def convert(self, value, param, ctx):
        if isinstance(value, SegmentFlag):
            return value
        try:
            return SegmentFlag.parse(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


class AddressParamType(click.ParamType):
    """An address in decimal or ``0x``-prefixed hexadecimal."""

    name = "ADDRESS"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            address = int(value, 0)
        except ValueError:
            self.fail(f"{value!r} is not a valid address", param, ctx)
        if address < 0:
            self.fail(f"{value!r} is negative", param, ctx)
        return address


FLAGS = FlagsParamType()
ADDRESS = AddressParamType()


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("elfcopyflat")
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_path", metavar="OUTPUT", type=click.Path(dir_okay=False))
@click.option(
    "--if", "if_flags",
    type=FLAGS,
    default=None,
    help='Only copy segments with all of these flags (among "rwx").',
)
@click.option(
    "--if-not", "if_not_flags",
    type=FLAGS,
    default=None,
    help='Only copy segments with none of these flags (among "rwx").',
)
@click.option(
    "--base",
    type=ADDRESS,
    default=None,
    help="Address to start the flat binary at.  Default: lowest segment address.",
)
@click.option(
    "--reject-overlaps",
    is_flag=True,
    default=False,
    help="Fail when selected segments overlap instead of letting the later one win.",
)
@click.option(
    "--require-non-empty",
    is_flag=True,
    default=False,
    help="Fail instead of writing an empty file when nothing is selected.",
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="TOML configuration file with [global] and [flatcopy] sections.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print a JSON summary of the conversion to stdout.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Print the program header table and layout.",
)
def flatcopy_cli(
    input_path: str,
    output_path: str,
    if_flags: Optional[SegmentFlag],
    if_not_flags: Optional[SegmentFlag],
    base: Optional[int],
    reject_overlaps: bool,
    require_non_empty: bool,
    config_path: Optional[str],
    json_output: bool,
    verbose: bool,
) -> None:
    """Copy loadable segments in an ELF file to a flat binary.

    INPUT is the ELF executable, shared object or core file.
    OUTPUT is the flat binary to write; byte N holds the contents of
    address BASE + N.
    """
    console = FlatConsole()

    try:
        config = AppConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(1)

    settings = config.global_settings
    logger = FlatLogger(
        "cli",
        log_level="DEBUG" if verbose or settings.debug else settings.log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    options = CopyOptions.from_config(
        config.flatcopy,
        predicate=SelectionPredicate(
            require=if_flags or SegmentFlag.NONE,
            exclude=if_not_flags or SegmentFlag.NONE,
        ),
        base_address=base,
        require_non_empty=True if require_non_empty else None,
        overlap_policy=OverlapPolicy.ERROR if reject_overlaps else None,
    )

    engine = FlatCopyEngine(logger=logger)

    try:
        result = engine.convert_file(input_path, output_path, options)
    except KeyboardInterrupt:
        console.warning("Interrupted by user.")
        sys.exit(130)
    except FlatCopyError as exc:
        console.error(f"{exc.stage} failed: {exc}")
        sys.exit(1)

    if verbose:
        FlatCopyConsoleOutput(console=console).display(result)
        console.success(f"Wrote {len(result.image):,} bytes to {output_path}")

    if json_output:
        click.echo(json.dumps(
            {"output": output_path, **result.model_dump(mode="json")},
            indent=2,
        ))


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``elfcopyflat`` console script."""
    flatcopy_cli()


if __name__ == "__main__":
    main()
