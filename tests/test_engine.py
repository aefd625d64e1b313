from __future__ import annotations

import pytest

from elfcopyflat.core.errors import FormatError, ImageIOError, LayoutError, SelectionError
from elfcopyflat.core.models import (
    AddressClass,
    ByteOrder,
    CopyOptions,
    OverlapPolicy,
    PipelineStage,
    SegmentFlag,
    SelectionPredicate,
)
from elfcopyflat.output.sink import BufferSink
from tests.elfbuild import R, W, X, Seg, build_elf, pattern


def test_scenario_all_segments(engine, scenario_elf):
    result = engine.run(scenario_elf, CopyOptions())

    assert result.stage is PipelineStage.ASSEMBLED
    assert result.identity.address_class is AddressClass.ELF64
    assert result.identity.byte_order is ByteOrder.LITTLE
    assert result.layout.base_address == 0x1000
    assert result.layout.total_size == 0x1300
    assert result.selected_indices == [0, 1]
    assert result.overlaps == []

    image = result.image
    assert len(image) == 0x1300
    assert image[0:0x200] == scenario_elf[0x1000:0x1200]
    assert image[0x200:0x1000] == bytes(0xE00)
    assert image[0x1000:0x1100] == scenario_elf[0x1200:0x1300]
    assert image[0x1100:0x1300] == bytes(0x200)


def test_scenario_writable_only(engine, scenario_elf):
    options = CopyOptions(predicate=SelectionPredicate.requiring(SegmentFlag.W))
    result = engine.run(scenario_elf, options)
    assert result.selected_indices == [1]
    assert result.layout.base_address == 0x2000
    assert result.image == scenario_elf[0x1200:0x1300] + bytes(0x200)


def test_scenario_without_executable(engine, scenario_elf):
    options = CopyOptions(predicate=SelectionPredicate.excluding(SegmentFlag.X))
    assert engine.run(scenario_elf, options).selected_indices == [1]


def test_runs_are_deterministic(engine, scenario_elf):
    options = CopyOptions(base_address=0x800)
    first = engine.run(scenario_elf, options)
    second = engine.run(scenario_elf, options)
    assert first.image == second.image
    assert first.model_dump() == second.model_dump()


@pytest.mark.parametrize("bits", [32, 64])
@pytest.mark.parametrize("byteorder", ["little", "big"])
def test_every_variant_flattens_identically(engine, scenario_segments, bits, byteorder):
    data = build_elf(scenario_segments, bits=bits, byteorder=byteorder)
    result = engine.run(data, CopyOptions())
    assert result.identity.describe() == (
        f"ELF{bits} {'LSB' if byteorder == 'little' else 'MSB'}"
    )
    assert result.image[:0x200] == scenario_segments[0].data
    assert result.image[0x1000:0x1100] == scenario_segments[1].data
    assert len(result.image) == 0x1300


def test_non_loadable_entries_are_ignored(engine):
    data = build_elf([
        Seg(vaddr=0x0, offset=0x100, data=pattern(0x10), kind=4, flags=R),
        Seg(vaddr=0x4000, offset=0x200, data=pattern(0x10), flags=R | X),
    ])
    result = engine.run(data, CopyOptions())
    assert len(result.segments) == 2
    assert result.selected_indices == [1]
    assert result.layout.base_address == 0x4000


def test_convert_hands_image_to_sink(engine, scenario_elf):
    sink = BufferSink()
    result = engine.convert(scenario_elf, CopyOptions(), sink)
    assert result.stage is PipelineStage.WRITTEN
    assert sink.image == result.image


def test_nothing_selected_gives_empty_image(engine, scenario_elf):
    options = CopyOptions(predicate=SelectionPredicate(require=SegmentFlag.W, exclude=SegmentFlag.R))
    sink = BufferSink()
    result = engine.convert(scenario_elf, options, sink)
    assert result.selection == []
    assert sink.image == b""


def test_nothing_selected_is_an_error_when_output_required(engine, scenario_elf):
    options = CopyOptions(
        predicate=SelectionPredicate(require=SegmentFlag.W, exclude=SegmentFlag.R),
        require_non_empty=True,
    )
    sink = BufferSink()
    with pytest.raises(SelectionError) as excinfo:
        engine.convert(scenario_elf, options, sink)
    assert excinfo.value.stage == "selection"
    assert sink.image is None


def test_failures_name_their_stage(engine, scenario_segments):
    data = build_elf(scenario_segments, phentsize=40)
    with pytest.raises(FormatError) as excinfo:
        engine.run(data, CopyOptions())
    assert excinfo.value.stage == "program headers"

    with pytest.raises(FormatError) as excinfo:
        engine.run(b"MZ" + bytes(100), CopyOptions())
    assert excinfo.value.stage == "header"


def test_segment_past_end_of_file(engine):
    seg = Seg(vaddr=0x1000, offset=0x100, data=pattern(0x10), filesz=0x1000)
    with pytest.raises(ImageIOError) as excinfo:
        engine.run(build_elf([seg]), CopyOptions())
    assert excinfo.value.stage == "assembly"


def _overlapping_elf() -> bytes:
    return build_elf([
        Seg(vaddr=0x1000, offset=0x100, data=b"\xaa" * 0x20, flags=R),
        Seg(vaddr=0x1010, offset=0x200, data=b"\xbb" * 0x20, flags=R | W),
    ])


def test_overlap_last_wins(engine):
    result = engine.run(_overlapping_elf(), CopyOptions())
    assert [(ov.earlier, ov.later, ov.size) for ov in result.overlaps] == [(0, 1, 0x10)]
    assert result.image == b"\xaa" * 0x10 + b"\xbb" * 0x20


def test_overlap_rejected_by_policy(engine):
    options = CopyOptions(overlap_policy=OverlapPolicy.ERROR)
    with pytest.raises(LayoutError, match="overlapping") as excinfo:
        engine.run(_overlapping_elf(), options)
    assert excinfo.value.stage == "layout"


def test_convert_file_writes_output(engine, scenario_elf, tmp_path):
    src = tmp_path / "kernel.elf"
    dst = tmp_path / "kernel.bin"
    src.write_bytes(scenario_elf)

    result = engine.convert_file(src, dst, CopyOptions())

    assert result.stage is PipelineStage.WRITTEN
    assert dst.read_bytes() == result.image
    assert not (tmp_path / "kernel.bin.partial").exists()


def test_convert_file_missing_input(engine, tmp_path):
    with pytest.raises(ImageIOError, match="cannot read") as excinfo:
        engine.convert_file(tmp_path / "missing.elf", tmp_path / "out.bin", CopyOptions())
    assert excinfo.value.stage == "input"
    assert not (tmp_path / "out.bin").exists()


def test_failed_run_leaves_existing_output_alone(engine, tmp_path):
    src = tmp_path / "bad.elf"
    dst = tmp_path / "out.bin"
    src.write_bytes(build_elf([Seg(vaddr=0x1000, offset=0x100, data=b"", filesz=0x400)]))
    dst.write_bytes(b"previous")

    with pytest.raises(ImageIOError):
        engine.convert_file(src, dst, CopyOptions())

    assert dst.read_bytes() == b"previous"
    assert not (tmp_path / "out.bin.partial").exists()


def _far_apart_elf() -> bytes:
    return build_elf([
        Seg(vaddr=0x0, offset=0x100, data=pattern(0x10), flags=R | X),
        Seg(vaddr=0xFFFF800000000000, offset=0x200, data=pattern(0x10, seed=2), flags=R | W),
    ], bits=64)


def test_far_apart_segments_hit_the_default_limit(engine):
    with pytest.raises(LayoutError, match="limit") as excinfo:
        engine.run(_far_apart_elf(), CopyOptions())
    assert excinfo.value.stage == "layout"


def test_far_apart_segments_without_limit(engine):
    with pytest.raises(LayoutError, match="cannot allocate") as excinfo:
        engine.run(_far_apart_elf(), CopyOptions(max_image_size=None))
    assert excinfo.value.stage == "layout"


def test_bss_offset_past_end_of_file_is_ignored(engine):
    text = Seg(vaddr=0x1000, offset=0x100, data=pattern(0x20), flags=R | X)
    size = len(build_elf([text]))
    bss = Seg(vaddr=0x2000, offset=size + 0x1000, memsz=0x100, flags=R | W)
    data = build_elf([text, bss])[:size]

    result = engine.run(data, CopyOptions())
    assert result.layout.total_size == 0x1100
    assert result.image == pattern(0x20) + bytes(0x10E0)
