"""On-disk file system format: block geometry and packed records."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass, field
from enum import IntEnum
from typing import ClassVar

ROOTINO = 1
BSIZE = 512

NDIRECT = 12
NINDIRECT = BSIZE // struct.calcsize("<I")
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

# Bitmap bits per block.
BPB = BSIZE * 8


class InodeType(IntEnum):
    """Values stored in the type field of an on-disk inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class Superblock:
    """Describes the disk layout; stored in block 1."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nswap: int = 0
    nlog: int = 0
    swapstart: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<9I")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        return self._STRUCT.pack(*astuple(self))

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        _require(data, cls.SIZE, "superblock")
        return cls(*cls._STRUCT.unpack_from(data))


@dataclass
class DiskInode:
    """On-disk inode record."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    _STRUCT: ClassVar[struct.Struct] = struct.Struct(f"<4hI{NDIRECT + 1}I")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"inode needs {NDIRECT + 1} block addresses")
        return self._STRUCT.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        _require(data, cls.SIZE, "inode")
        values = cls._STRUCT.unpack_from(data)
        return cls(*values[:5], addrs=list(values[5:]))


@dataclass
class Dirent:
    """Directory entry: an inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    _STRUCT: ClassVar[struct.Struct] = struct.Struct(f"<H{DIRSIZ}s")
    SIZE: ClassVar[int] = _STRUCT.size

    def pack(self) -> bytes:
        raw = self.name.encode("utf-8", "surrogateescape")[:DIRSIZ]
        return self._STRUCT.pack(self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        _require(data, cls.SIZE, "directory entry")
        inum, raw = cls._STRUCT.unpack_from(data)
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(inum, name)


# Inodes per block.
IPB = BSIZE // DiskInode.SIZE


def inode_block(inum: int, sb: Superblock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bitmap_block(b: int, sb: Superblock) -> int:
    """Block of the free map holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart