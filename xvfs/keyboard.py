"""Decoder from PC keyboard scan codes to characters."""

from __future__ import annotations

from typing import Iterable

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_SPECIAL = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}


def _table(base: list[int], extras: dict[int, int]) -> tuple[int, ...]:
    table = [NO] * 256
    table[:len(base)] = base
    for code, value in {**_SPECIAL, **extras}.items():
        table[code] = value
    return tuple(table)


_KEYPAD = [NO] * 7 + list(b"789-456+1230.") + [NO] * 4

_NORMAL = _table(
    [NO, 0x1B, *b"1234567890-=", 0x08, 0x09,
     *b"qwertyuiop[]", 0x0A, NO, *b"asdfghjkl;'`", NO,
     *b"\\zxcvbnm,./", NO, ord("*"), NO, ord(" "), *[NO] * 6, *_KEYPAD],
    {0x9C: 0x0A, 0xB5: ord("/")},
)

_SHIFTED = _table(
    [NO, 0x1B, *b"!@#$%^&*()_+", 0x08, 0x09,
     *b"QWERTYUIOP{}", 0x0A, NO, *b'ASDFGHJKL:"~', NO,
     *b"|ZXCVBNM<>?", NO, ord("*"), NO, ord(" "), *[NO] * 6, *_KEYPAD],
    {0x9C: 0x0A, 0xB5: ord("/")},
)

_CONTROL = _table(
    [*[NO] * 16, *map(_ctl, "QWERTYUIOP"), NO, NO, 0x0D, NO,
     *map(_ctl, "ASDFGHJKL"), *[NO] * 4, *map(_ctl, "\\ZXCVBNM"),
     NO, NO, _ctl("/"), NO, NO],
    {0x9C: 0x0D, 0xB5: _ctl("/")},
)

_CHARCODE = (_NORMAL, _SHIFTED, _CONTROL, _CONTROL)


class KeyboardDecoder:
    """Tracks modifier state across scan codes and yields characters."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, data: int) -> int:
        """Process one scan code; returns the character or 0 for none."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            # Previous code was an E0 escape.
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= _SHIFTCODE.get(data, 0)
        self.shift ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def decode(self, scancodes: Iterable[int]) -> bytes:
        """Feed every scan code and return the characters produced."""
        return bytes(c for c in map(self.feed, scancodes) if c)