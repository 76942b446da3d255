"""Redo log that makes multi-block file system updates atomic.

On disk the log is a header block holding the count and the home
block numbers, followed by copies of those blocks.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from xvfs.bcache import Buf, BufferCache
from xvfs.layout import BSIZE

DEFAULT_LOGSIZE = 30
DEFAULT_MAXOPBLOCKS = 10

_INT = struct.Struct("<i")


class JournalError(Exception):
    """Raised when the log is misused or overflows."""


class Journal:
    """Groups the writes of concurrent operations into one commit.

    Creating a journal replays any committed transaction left on disk.
    """

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        start: int,
        size: int,
        capacity: int = DEFAULT_LOGSIZE,
        max_op_blocks: int = DEFAULT_MAXOPBLOCKS,
    ) -> None:
        if _INT.size * (capacity + 1) >= BSIZE:
            raise ValueError("initlog: too big logheader")
        if max_op_blocks > capacity:
            raise ValueError("one operation may not need more blocks than the log holds")
        self.cache = cache
        self.dev = dev
        self.start = start
        self.size = size
        self.capacity = capacity
        self.max_op_blocks = max_op_blocks
        self.outstanding = 0
        self.committing = False
        self.header: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    def _read_head(self) -> list[int]:
        buf = self.cache.bread(self.dev, self.start)
        try:
            (n,) = _INT.unpack_from(buf.data, 0)
            if not 0 <= n <= self.capacity:
                raise JournalError(f"corrupt log header: {n} blocks")
            return list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))
        finally:
            self.cache.brelse(buf)

    def _write_head(self) -> None:
        # Writing the header is the true point at which a transaction commits.
        buf = self.cache.bread(self.dev, self.start)
        try:
            n = len(self.header)
            _INT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _INT.size, *self.header)
            self.cache.bwrite(buf)
        finally:
            self.cache.brelse(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, blockno in enumerate(self.header):
            log_buf = self.cache.bread(self.dev, self.start + tail + 1)
            home_buf = self.cache.bread(self.dev, blockno)
            try:
                src, dst = (home_buf, log_buf) if to_log else (log_buf, home_buf)
                dst.data[:] = src.data
                self.cache.bwrite(dst)
            finally:
                self.cache.brelse(home_buf)
                self.cache.brelse(log_buf)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self.header = self._read_head()
        self._copy_blocks(to_log=False)
        self.header = []
        self._write_head()

    def _commit(self) -> None:
        if self.header:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._copy_blocks(to_log=False)
            self.header = []
            self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self.committing or (
                len(self.header) + (self.outstanding + 1) * self.max_op_blocks
                > self.capacity
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one to finish commits the log."""
        with self._cond:
            if self.outstanding < 1:
                raise JournalError("end_op without begin_op")
            self.outstanding -= 1
            if self.committing:
                raise JournalError("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the log and pin it in the cache."""
        if len(self.header) >= self.capacity or len(self.header) >= self.size - 1:
            raise JournalError("too big a transaction")
        if self.outstanding < 1:
            raise JournalError("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.header:
                self.header.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator["Journal"]:
        """Run the body between ``begin_op`` and ``end_op``."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()