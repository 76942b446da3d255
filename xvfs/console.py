"""Console line discipline: edited keyboard input and echoed output."""

from __future__ import annotations

import threading
from typing import Callable, Iterable

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


CTRL_D = _ctrl("D")
CTRL_H = _ctrl("H")
CTRL_P = _ctrl("P")
CTRL_U = _ctrl("U")
DELETE = 0x7F
NEWLINE = ord("\n")
RETURN = ord("\r")


class Console:
    """Buffers typed characters into lines and records everything echoed.

    Echoed and written bytes accumulate in ``output``.
    """

    def __init__(self, procdump: Callable[[], None] | None = None) -> None:
        self.output = bytearray()
        self._procdump = procdump
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.output += b"\b \b"
        else:
            self.output.append(c & 0xFF)

    def interrupt(self, chars: str | bytes | Iterable[int]) -> None:
        """Process typed characters: editing keys, echo and line completion."""
        if isinstance(chars, str):
            chars = chars.encode("latin-1")
        dump = False
        with self._cond:
            for c in chars:
                if c == CTRL_P:
                    dump = True
                elif c == CTRL_U:
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != NEWLINE
                    ):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (CTRL_H, DELETE):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == RETURN:
                        c = NEWLINE
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self._putc(c)
                    if c in (NEWLINE, CTRL_D) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if dump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; ^D marks end of file."""
        out = bytearray()
        remaining = n
        with self._cond:
            while remaining > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == CTRL_D:
                    if remaining < n:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                remaining -= 1
                if c == NEWLINE:
                    break
        return bytes(out)

    def write(self, data: bytes | bytearray) -> int:
        """Echo ``data`` to the console; returns its length."""
        payload = bytes(data)
        with self._cond:
            for c in payload:
                self._putc(c)
        return len(payload)