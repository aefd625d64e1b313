from __future__ import annotations

import pytest

from shared.logger import FlatLogger

from elfcopyflat.core.engine import FlatCopyEngine
from tests.elfbuild import R, W, X, Seg, build_elf, pattern


@pytest.fixture
def quiet_logger() -> FlatLogger:
    return FlatLogger("test", console_output=False)


@pytest.fixture
def engine(quiet_logger: FlatLogger) -> FlatCopyEngine:
    return FlatCopyEngine(logger=quiet_logger)


@pytest.fixture
def scenario_segments() -> list[Seg]:
    """Text at 0x1000 and data + bss at 0x2000."""
    return [
        Seg(vaddr=0x1000, offset=0x1000, data=pattern(0x200, seed=3), flags=R | X),
        Seg(vaddr=0x2000, offset=0x1200, data=pattern(0x100, seed=9), memsz=0x300, flags=R | W),
    ]


@pytest.fixture
def scenario_elf(scenario_segments: list[Seg]) -> bytes:
    return build_elf(scenario_segments, bits=64, byteorder="little")
