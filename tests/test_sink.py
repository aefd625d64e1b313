from __future__ import annotations

import pytest

from elfcopyflat.core.errors import ImageIOError
from elfcopyflat.output.sink import BufferSink, FileSink


def test_file_sink_writes_image(tmp_path):
    sink = FileSink(tmp_path / "image.bin")
    sink.write(b"\x00\x01\x02")
    assert (tmp_path / "image.bin").read_bytes() == b"\x00\x01\x02"
    assert not sink.partial_path.exists()


def test_file_sink_replaces_existing_file(tmp_path):
    target = tmp_path / "image.bin"
    target.write_bytes(b"old contents that are longer")
    FileSink(target).write(b"new")
    assert target.read_bytes() == b"new"


def test_file_sink_writes_empty_image(tmp_path):
    FileSink(tmp_path / "empty.bin").write(b"")
    assert (tmp_path / "empty.bin").read_bytes() == b""


def test_partial_name_sits_next_to_target(tmp_path):
    sink = FileSink(tmp_path / "out" / "rom.bin")
    assert sink.partial_path == tmp_path / "out" / "rom.bin.partial"


def test_file_sink_failure_leaves_nothing(tmp_path):
    sink = FileSink(tmp_path / "no-such-dir" / "image.bin")
    with pytest.raises(ImageIOError, match="cannot write") as excinfo:
        sink.write(b"data")
    assert excinfo.value.stage == "output"
    assert isinstance(excinfo.value, OSError)
    assert not (tmp_path / "no-such-dir").exists()


def test_file_sink_cannot_replace_directory(tmp_path):
    target = tmp_path / "image.bin"
    target.mkdir()
    with pytest.raises(ImageIOError):
        FileSink(target).write(b"data")
    assert target.is_dir()
    assert not (tmp_path / "image.bin.partial").exists()


def test_buffer_sink():
    sink = BufferSink()
    assert sink.image is None
    sink.write(b"abc")
    assert sink.image == b"abc"
