"""In-memory pipe with a fixed-size ring buffer."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeClosed(BrokenPipeError):
    """Raised when writing to a full pipe whose read end is closed."""


class Pipe:
    """A one-way byte channel between a writer and a reader.

    Writers block while the buffer is full and readers block while it is
    empty and the write end is still open.
    """

    def __init__(self) -> None:
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write all of ``data``, waiting for room; returns its length."""
        payload = bytes(data)
        with self._cond:
            for byte in payload:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise PipeClosed("pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(payload)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; returns b"" once empty and the writer closed."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = max(0, min(n, self.nwrite - self.nread))
            out = bytes(
                self._data[(self.nread + i) % PIPESIZE] for i in range(count)
            )
            self.nread += count
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()