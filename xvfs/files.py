"""Open file objects shared through a fixed-size file table."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass

from xvfs.filesystem import FileSystem, Inode, Stat
from xvfs.layout import BSIZE
from xvfs.pipe import Pipe

NFILE = 100


class FileError(Exception):
    """Raised when a file operation is not allowed or the table is full."""


class FileKind(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class OpenFile:
    """One entry of the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0

    def _reset(self) -> None:
        self.kind = FileKind.NONE
        self.readable = False
        self.writable = False
        self.pipe = None
        self.ip = None
        self.off = 0


class FileTable:
    """The system-wide table of open files."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def _filesystem(self) -> FileSystem:
        if self.fs is None:
            raise FileError("no file system attached")
        return self.fs

    def alloc(self) -> OpenFile:
        """Return a fresh entry with one reference."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f._reset()
                    f.ref = 1
                    return f
        raise FileError("file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise FileError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; release the pipe or inode on the last one."""
        with self._lock:
            if f.ref < 1:
                raise FileError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f._reset()
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._filesystem()
            with fs.journal.transaction():
                fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise FileError("not an inode file")
        fs = self._filesystem()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f``, advancing its offset."""
        if not f.readable:
            raise FileError("file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._filesystem()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise FileError("fileread")

    def write(self, f: OpenFile, data: bytes | bytearray) -> int:
        """Write all of ``data`` to ``f``, advancing its offset."""
        if not f.writable:
            raise FileError("file not open for writing")
        payload = bytes(data)
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(payload)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._filesystem()
            # Keep each transaction within the log's per-operation budget:
            # inode, indirect block, bitmap and two blocks of slop.
            limit = max(BSIZE, ((fs.journal.max_op_blocks - 1 - 1 - 2) // 2) * BSIZE)
            i = 0
            while i < len(payload):
                chunk = payload[i:i + limit]
                with fs.journal.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise FileError("short filewrite")
                i += r
            return len(payload)
        raise FileError("filewrite")

    def open_pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe; returns its read end and its write end."""
        reader = self.alloc()
        try:
            writer = self.alloc()
        except FileError:
            self.close(reader)
            raise
        pipe = Pipe()
        reader.kind, reader.readable, reader.writable, reader.pipe = (
            FileKind.PIPE, True, False, pipe,
        )
        writer.kind, writer.readable, writer.writable, writer.pipe = (
            FileKind.PIPE, False, True, pipe,
        )
        return reader, writer