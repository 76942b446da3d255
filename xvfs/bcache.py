"""Buffer cache: cached copies of disk blocks, recycled least recently used."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from xvfs.disk import DiskError, MemDisk
from xvfs.layout import BSIZE

DEFAULT_NBUF = 30
BLOCKS_PER_PAGE = 8
PAGE_SIZE = BLOCKS_PER_PAGE * BSIZE


class CacheError(Exception):
    """Raised when the buffer cache is misused or exhausted."""


@dataclass(eq=False)
class Buf:
    """One cached disk block.

    ``valid`` means the data has been read from disk; ``dirty`` means it
    was modified and must be written back before the buffer is reused.
    """

    dev: int = -1
    blockno: int = -1
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE), repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _owner: int | None = field(default=None, repr=False)


class BufferCache:
    """Fixed set of buffers kept in most-recently-used order.

    Only one holder at a time may use a buffer: ``bread`` returns it
    locked and ``brelse`` gives it back.
    """

    def __init__(self, disk: MemDisk, nbuf: int = DEFAULT_NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._mru: list[Buf] = [Buf() for _ in range(nbuf)]

    @staticmethod
    def _acquire_sleep(b: Buf) -> None:
        b._lock.acquire()
        b._owner = threading.get_ident()

    @staticmethod
    def _holding(b: Buf) -> bool:
        return b._lock.locked() and b._owner == threading.get_ident()

    @staticmethod
    def _release_sleep(b: Buf) -> None:
        b._owner = None
        b._lock.release()

    def _bget(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            found = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if found is not None:
                found.refcnt += 1
            else:
                # A dirty buffer is still pinned by the log even at refcnt 0.
                found = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if found is None:
                    raise CacheError("bget: no buffers")
                found.dev = dev
                found.blockno = blockno
                found.valid = False
                found.dirty = False
                found.refcnt = 1
        self._acquire_sleep(found)
        return found

    def _sync(self, b: Buf) -> None:
        if not self._holding(b):
            raise CacheError("iderw: buf not locked")
        if b.valid and not b.dirty:
            raise CacheError("iderw: nothing to do")
        if b.dev != self.disk.dev:
            raise DiskError(f"iderw: request not for disk {self.disk.dev}")
        if b.dirty:
            b.dirty = False
            self.disk.write_block(b.blockno, b.data)
        else:
            b.data[:] = self.disk.read_block(b.blockno)
        b.valid = True

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of the block."""
        b = self._bget(dev, blockno)
        if not b.valid:
            try:
                self._sync(b)
            except Exception:
                self.brelse(b)
                raise
        return b

    def bwrite(self, buf: Buf) -> None:
        """Write the buffer's contents to disk; the caller must hold it."""
        if not self._holding(buf):
            raise CacheError("bwrite")
        buf.dirty = True
        self._sync(buf)

    def brelse(self, buf: Buf) -> None:
        """Release a locked buffer, making it the most recently used."""
        if not self._holding(buf):
            raise CacheError("brelse")
        self._release_sleep(buf)
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    def readpage(self, dev: int, blockno: int) -> bytes:
        """Read the page stored in the eight blocks starting at ``blockno``."""
        chunks = []
        for i in range(BLOCKS_PER_PAGE):
            b = self.bread(dev, blockno + i)
            chunks.append(bytes(b.data))
            self.brelse(b)
        return b"".join(chunks)

    def writepage(self, dev: int, page: bytes | bytearray, blockno: int) -> None:
        """Write a page into the eight blocks starting at ``blockno``."""
        if len(page) != PAGE_SIZE:
            raise ValueError(f"page must be {PAGE_SIZE} bytes, got {len(page)}")
        view = memoryview(bytes(page))
        for i in range(BLOCKS_PER_PAGE):
            b = self._bget(dev, blockno + i)
            try:
                b.data[:] = view[i * BSIZE:(i + 1) * BSIZE]
                self.bwrite(b)
            finally:
                self.brelse(b)