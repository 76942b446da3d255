"""A disk whose blocks live in memory, loaded from or saved to an image."""

from __future__ import annotations

import os
from pathlib import Path

from xvfs.layout import BSIZE


class DiskError(Exception):
    """Raised for a request the disk cannot serve."""


class MemDisk:
    """Block device backed by a bytearray.

    The image is split into ``BSIZE`` blocks; a trailing partial block
    is kept but cannot be addressed.
    """

    def __init__(self, image: bytes | bytearray = b"", dev: int = 1) -> None:
        self.dev = dev
        self._data = bytearray(image)
        self.nblocks = len(self._data) // BSIZE

    def _span(self, blockno: int) -> slice:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")
        return slice(blockno * BSIZE, (blockno + 1) * BSIZE)

    def read_block(self, blockno: int) -> bytes:
        """Return a copy of block ``blockno``."""
        return bytes(self._data[self._span(blockno)])

    def write_block(self, blockno: int, data: bytes | bytearray) -> None:
        """Replace block ``blockno`` with exactly ``BSIZE`` bytes."""
        span = self._span(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"block data must be {BSIZE} bytes, got {len(data)}")
        self._data[span] = data

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> "MemDisk":
        """Load a disk image from ``path``."""
        return cls(Path(path).read_bytes())

    def save(self, path: str | os.PathLike) -> None:
        """Write the whole image to ``path``."""
        Path(path).write_bytes(bytes(self._data))