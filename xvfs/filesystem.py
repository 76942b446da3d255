"""Inodes, directories and path names on top of the buffer cache and log.

Callers lock an inode with ``ilock`` before examining or changing it,
and every operation that may write (including ``iput`` and path lookup)
runs inside a journal transaction.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Protocol

from xvfs.bcache import DEFAULT_NBUF, Buf, BufferCache
from xvfs.disk import MemDisk
from xvfs.journal import Journal
from xvfs.layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    bitmap_block,
    inode_block,
)

NINODE = 50
NDEV = 10

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FileSystemError(Exception):
    """Raised when the file system is misused or runs out of resources."""


class Device(Protocol):
    """A character device reachable through a device inode."""

    def read(self, n: int) -> bytes: ...

    def write(self, data: bytes) -> int: ...


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode.

    ``ref`` counts in-memory references; ``valid`` tells whether the
    fields below it have been read from disk.
    """

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _owner: int | None = field(default=None, repr=False)

    def _holding(self) -> bool:
        return self._lock.locked() and self._owner == threading.get_ident()


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


def skipelem(path: str) -> tuple[str, str] | None:
    """Split the first element off ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or
    None when no element is left. Names are cut to ``DIRSIZ`` characters.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    name, _, rest = stripped.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def _name_key(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")[:DIRSIZ]


class FileSystem:
    """The file system stored on one disk."""

    def __init__(
        self,
        disk: MemDisk,
        *,
        nbuf: int = DEFAULT_NBUF,
        ninode: int = NINODE,
        devsw: Mapping[int, Device] | None = None,
    ) -> None:
        self.dev = disk.dev
        self.cache = BufferCache(disk, nbuf)
        with self._block(1) as bp:
            self.sb = Superblock.unpack(bytes(bp.data))
        self.journal = Journal(self.cache, self.dev, self.sb.logstart, self.sb.nlog)
        self.devsw: dict[int, Device] = dict(devsw or {})
        self._icache_lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        bp = self.cache.bread(self.dev, blockno)
        try:
            yield bp
        finally:
            self.cache.brelse(bp)

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self._block(bno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.journal.log_write(bp)

    def _balloc(self) -> int:
        for b in range(0, self.sb.size, BPB):
            with self._block(bitmap_block(b, self.sb)) as bp:
                found = None
                for bi in range(min(BPB, self.sb.size - b)):
                    mask = 1 << (bi % 8)
                    if not bp.data[bi // 8] & mask:
                        bp.data[bi // 8] |= mask
                        self.journal.log_write(bp)
                        found = b + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FileSystemError("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self._block(bitmap_block(b, self.sb)) as bp:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise FileSystemError("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.journal.log_write(bp)

    # Inodes.

    def _inode_offset(self, inum: int) -> int:
        return (inum % IPB) * DiskInode.SIZE

    def ialloc(self, type_: int) -> Inode:
        """Allocate a free inode of ``type_``; returned referenced, unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self._block(inode_block(inum, self.sb)) as bp:
                off = self._inode_offset(inum)
                dip = DiskInode.unpack(bytes(bp.data[off:off + DiskInode.SIZE]))
                if dip.type != InodeType.FREE:
                    continue
                bp.data[off:off + DiskInode.SIZE] = DiskInode(type=int(type_)).pack()
                self.journal.log_write(bp)
            return self.iget(inum)
        raise FileSystemError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy the in-memory inode to disk; the caller holds its lock."""
        with self._block(inode_block(ip.inum, self.sb)) as bp:
            off = self._inode_offset(ip.inum)
            dip = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            bp.data[off:off + DiskInode.SIZE] = dip.pack()
            self.journal.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum`` with one more reference."""
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FileSystemError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FileSystemError("ilock")
        ip._lock.acquire()
        ip._owner = threading.get_ident()
        if ip.valid:
            return
        with self._block(inode_block(ip.inum, self.sb)) as bp:
            off = self._inode_offset(ip.inum)
            dip = DiskInode.unpack(bytes(bp.data[off:off + DiskInode.SIZE]))
        ip.type, ip.major, ip.minor = dip.type, dip.major, dip.minor
        ip.nlink, ip.size, ip.addrs = dip.nlink, dip.size, list(dip.addrs)
        ip.valid = True
        if ip.type == InodeType.FREE:
            self._release(ip)
            raise FileSystemError("ilock: no type")

    @staticmethod
    def _release(ip: Inode) -> None:
        ip._owner = None
        ip._lock.release()

    def iunlock(self, ip: Inode) -> None:
        """Unlock ``ip``; the caller must hold its lock."""
        if ip is None or not ip._holding() or ip.ref < 1:
            raise FileSystemError("iunlock")
        self._release(ip)

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode if it was the last and unlinked."""
        ip._lock.acquire()
        ip._owner = threading.get_ident()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    last = ip.ref == 1
                if last:
                    self._itrunc(ip)
                    ip.type = InodeType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            self._release(ip)
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock ``ip`` and drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn >= NINDIRECT:
            raise FileSystemError("bmap: out of range")
        if ip.addrs[NDIRECT] == 0:
            ip.addrs[NDIRECT] = self._balloc()
        with self._block(ip.addrs[NDIRECT]) as bp:
            addrs = list(_INDIRECT.unpack(bytes(bp.data)))
            if addrs[bn] == 0:
                addrs[bn] = self._balloc()
                bp.data[:] = _INDIRECT.pack(*addrs)
                self.journal.log_write(bp)
            return addrs[bn]

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self._block(ip.addrs[NDIRECT]) as bp:
                addrs = _INDIRECT.unpack(bytes(bp.data))
            for addr in addrs:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of ``ip``; the caller holds its lock."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode) -> Device:
        device = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        if device is None:
            raise FileSystemError(f"no device with major number {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; short at end of file."""
        if ip.type == InodeType.DEVICE:
            return self._device(ip).read(n)
        if off < 0 or n < 0 or off > ip.size:
            raise FileSystemError(f"read at offset {off} outside the file")
        n = min(n, ip.size - off)
        chunks = []
        end = off + n
        while off < end:
            start = off % BSIZE
            m = min(end - off, BSIZE - start)
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                chunks.append(bytes(bp.data[start:start + m]))
            off += m
        return b"".join(chunks)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file; returns bytes written."""
        if ip.type == InodeType.DEVICE:
            return self._device(ip).write(bytes(data))
        n = len(data)
        if off < 0 or off > ip.size:
            raise FileSystemError(f"write at offset {off} outside the file")
        if off + n > MAXFILE * BSIZE:
            raise FileSystemError("write past the maximum file size")
        view = memoryview(bytes(data))
        pos = 0
        while pos < n:
            start = off % BSIZE
            m = min(n - pos, BSIZE - start)
            with self._block(self._bmap(ip, off // BSIZE)) as bp:
                bp.data[start:start + m] = view[pos:pos + m]
                self.journal.log_write(bp)
            pos += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _entries(self, dp: Inode, what: str) -> Iterator[tuple[int, Dirent]]:
        for off in range(0, dp.size, Dirent.SIZE):
            raw = self.readi(dp, off, Dirent.SIZE)
            if len(raw) != Dirent.SIZE:
                raise FileSystemError(f"{what} read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in directory ``dp``: the inode and the entry's offset."""
        if dp.type != InodeType.DIR:
            raise FileSystemError("dirlookup not DIR")
        key = _name_key(name)
        for off, de in self._entries(dp, "dirlookup"):
            if de.inum != 0 and _name_key(de.name) == key:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        off = next(
            (o for o, de in self._entries(dp, "dirlink") if de.inum == 0), dp.size
        )
        entry = Dirent(inum, name).pack()
        if self.writei(dp, entry, off) != len(entry):
            raise FileSystemError("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str]:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                raise NotADirectoryError(name)
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                raise FileNotFoundError(name)
            ip = found[0]
        if parent:
            self.iput(ip)
            raise FileNotFoundError("path has no final element")
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Return the inode for ``path``, relative to ``cwd`` unless absolute."""
        return self._namex(path, False, cwd)[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Return the parent directory of ``path`` and the final element."""
        return self._namex(path, True, cwd)