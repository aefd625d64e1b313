"""
Image Sinks
============

Destinations for a finished flat image.  A sink receives the whole
image at once and either stores all of it or raises
:class:`~elfcopyflat.core.errors.ImageIOError` leaving nothing behind.

:class:`FileSink` writes next to the destination under a ``.partial``
name and renames it into place only after the data is flushed, so a
failed write never leaves a truncated image at the output path.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Protocol

from elfcopyflat.core.errors import ImageIOError


class ImageSink(Protocol):
    """Anything that accepts a complete flat image."""

    def write(self, image: bytes) -> None:
        ...


class BufferSink:
    """Keeps the image in memory.  Useful for library callers and tests."""

    def __init__(self) -> None:
        self.image: Optional[bytes] = None

    def write(self, image: bytes) -> None:
        self.image = image


class FileSink:
    """Writes the image to *path* atomically.

    Args:
        path: Destination file.  Its parent directory must exist.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def partial_path(self) -> Path:
        return self._path.with_name(self._path.name + ".partial")

    def write(self, image: bytes) -> None:
        """Write *image*, replacing any existing file at :attr:`path`.

        Raises:
            ImageIOError: If the image cannot be written or moved into
                place.  The partial file is removed first.
        """
        tmp_path = self.partial_path
        try:
            with open(tmp_path, "wb") as fh:
                fh.write(image)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise ImageIOError(
                f"cannot write {self._path}: {exc.strerror or exc}",
                stage="output",
            ) from exc
