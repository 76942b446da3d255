"""Build a file system image holding a root directory and some files."""

from __future__ import annotations

import argparse
import os
import struct
import sys
from pathlib import Path
from typing import BinaryIO, Iterable

from xvfs.layout import (
    BPB,
    BSIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    inode_block,
)

DEFAULT_FSSIZE = 1000
DEFAULT_NINODES = 200
DEFAULT_NLOG = 30
DEFAULT_NSWAP = 400

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image on a seekable binary file.

    Creating the builder zeroes every sector and writes the superblock.
    Layout: boot block, superblock, swap, log, inodes, bitmap, data.
    """

    def __init__(
        self,
        image: BinaryIO,
        fssize: int = DEFAULT_FSSIZE,
        ninodes: int = DEFAULT_NINODES,
        nlog: int = DEFAULT_NLOG,
        nswap: int = DEFAULT_NSWAP,
    ) -> None:
        if nswap % 8:
            raise ValueError("swap size must be a multiple of 8 blocks")
        self.image = image
        self.fssize = fssize
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap + nswap
        nblocks = fssize - self.nmeta
        if nblocks <= 0:
            raise ValueError(f"{fssize} blocks leave no room for data")
        self.sb = Superblock(
            size=fssize,
            nblocks=nblocks,
            ninodes=ninodes,
            nswap=nswap,
            nlog=nlog,
            swapstart=2,
            logstart=2 + nswap,
            inodestart=2 + nswap + nlog,
            bmapstart=2 + nswap + nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta

        zeroes = bytes(BSIZE)
        for sec in range(fssize):
            self.write_sector(sec, zeroes)
        self.write_sector(1, self.sb.pack())

    def write_sector(self, sec: int, data: bytes) -> None:
        """Write one sector; shorter data is padded with zero bytes."""
        if len(data) > BSIZE:
            raise ValueError(f"sector data longer than {BSIZE} bytes")
        self.image.seek(sec * BSIZE)
        self.image.write(bytes(data).ljust(BSIZE, b"\0"))

    def read_sector(self, sec: int) -> bytes:
        self.image.seek(sec * BSIZE)
        data = self.image.read(BSIZE)
        if len(data) != BSIZE:
            raise OSError(f"short read of sector {sec}")
        return data

    def _inode_slot(self, inum: int) -> tuple[int, int]:
        return inode_block(inum, self.sb), (inum % IPB) * DiskInode.SIZE

    def read_inode(self, inum: int) -> DiskInode:
        sec, offset = self._inode_slot(inum)
        return DiskInode.unpack(self.read_sector(sec)[offset:offset + DiskInode.SIZE])

    def write_inode(self, inum: int, dinode: DiskInode) -> None:
        sec, offset = self._inode_slot(inum)
        block = bytearray(self.read_sector(sec))
        block[offset:offset + DiskInode.SIZE] = dinode.pack()
        self.write_sector(sec, block)

    def ialloc(self, type_: int) -> int:
        """Allocate the next inode with one link and return its number."""
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise ValueError("out of inodes")
        self.freeinode += 1
        self.write_inode(inum, DiskInode(type=int(type_), nlink=1))
        return inum

    def _next_block(self) -> int:
        block = self.freeblock
        if block >= self.fssize:
            raise ValueError("out of data blocks")
        self.freeblock += 1
        return block

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``."""
        din = self.read_inode(inum)
        off = din.size
        view = memoryview(bytes(data))
        pos = 0
        while pos < len(view):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._next_block()
                block = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._next_block()
                indirect = list(_INDIRECT.unpack(self.read_sector(din.addrs[NDIRECT])))
                slot = fbn - NDIRECT
                if indirect[slot] == 0:
                    indirect[slot] = self._next_block()
                    self.write_sector(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                block = indirect[slot]
            n1 = min(len(view) - pos, (fbn + 1) * BSIZE - off)
            sector = bytearray(self.read_sector(block))
            start = off - fbn * BSIZE
            sector[start:start + n1] = view[pos:pos + n1]
            self.write_sector(block, sector)
            pos += n1
            off += n1
        din.size = off
        self.write_inode(inum, din)

    def write_bitmap(self, used: int) -> None:
        """Mark the first ``used`` blocks as allocated in the free map."""
        if used >= BPB:
            raise ValueError(f"bitmap block holds at most {BPB} bits")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self.write_sector(self.sb.bmapstart, bitmap)


def _entry_name(path: Path) -> str:
    # Binaries are built as _name so the host does not confuse them with its own.
    name = path.name
    return name[1:] if name.startswith("_") else name


def build_image(
    path: str | os.PathLike,
    files: Iterable[str | os.PathLike] = (),
    fssize: int = DEFAULT_FSSIZE,
    ninodes: int = DEFAULT_NINODES,
    nlog: int = DEFAULT_NLOG,
    nswap: int = DEFAULT_NSWAP,
) -> ImageBuilder:
    """Write an image at ``path`` whose root directory holds ``files``."""
    with open(path, "w+b") as image:
        builder = ImageBuilder(image, fssize, ninodes, nlog, nswap)
        root = builder.ialloc(InodeType.DIR)
        if root != ROOTINO:
            raise RuntimeError("root inode was not the first inode")
        builder.iappend(root, Dirent(root, ".").pack())
        builder.iappend(root, Dirent(root, "..").pack())

        for file_path in map(Path, files):
            with open(file_path, "rb") as src:
                inum = builder.ialloc(InodeType.FILE)
                builder.iappend(root, Dirent(inum, _entry_name(file_path)).pack())
                while chunk := src.read(BSIZE):
                    builder.iappend(inum, chunk)

        din = builder.read_inode(root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        builder.write_inode(root, din)
        builder.write_bitmap(builder.freeblock)
    return builder


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mkfs", description="Build a file system image.")
    parser.add_argument("image", help="image file to create")
    parser.add_argument("files", nargs="*", help="files to place in the root directory")
    parser.add_argument("--size", type=int, default=DEFAULT_FSSIZE, help="total blocks")
    parser.add_argument("--ninodes", type=int, default=DEFAULT_NINODES)
    parser.add_argument("--nlog", type=int, default=DEFAULT_NLOG)
    parser.add_argument("--nswap", type=int, default=DEFAULT_NSWAP)
    args = parser.parse_args(argv)

    try:
        builder = build_image(
            args.image, args.files, args.size, args.ninodes, args.nlog, args.nswap
        )
    except OSError as exc:
        target = exc.filename if exc.filename is not None else "mkfs"
        print(f"{target}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1

    sb = builder.sb
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {sb.nlog} inode blocks "
        f"{builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) swap {sb.nswap} "
        f"blocks {sb.nblocks} total {sb.size}"
    )
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {sb.bmapstart}")
    return 0