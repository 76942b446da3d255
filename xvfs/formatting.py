"""Minimal printf-style formatting for the user and console printers."""

from __future__ import annotations

from typing import Any, Iterator

_DIGITS = "0123456789abcdef"
_WORD = 1 << 32


def format_int(value: int, base: int = 10, signed: bool = True, uppercase: bool = False) -> str:
    """Render ``value`` as a 32-bit integer in ``base``.

    When ``signed`` the value is read as a two's-complement int;
    otherwise as an unsigned int.
    """
    if not 2 <= base <= 16:
        raise ValueError("base must be between 2 and 16")
    x = value & (_WORD - 1)
    negative = signed and x >= _WORD // 2
    if negative:
        x = _WORD - x
    digits = []
    while True:
        x, rem = divmod(x, base)
        digits.append(_DIGITS[rem])
        if x == 0:
            break
    text = "".join(reversed(digits))
    if uppercase:
        text = text.upper()
    return "-" + text if negative else text


def _char(value: Any) -> str:
    if isinstance(value, str):
        if len(value) != 1:
            raise TypeError("%c requires a single character")
        return value
    return chr(value & 0xFF)


def _render(fmt: str, args: tuple, uppercase: bool, allow_char: bool) -> str:
    pending: Iterator[Any] = iter(args)

    def next_arg() -> Any:
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(next_arg(), 10, True, uppercase))
        elif spec in ("x", "p"):
            out.append(format_int(next_arg(), 16, False, uppercase))
        elif spec == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s))
        elif spec == "c" and allow_char:
            out.append(_char(next_arg()))
        elif spec == "%":
            out.append("%")
        else:
            # Unknown sequences are printed verbatim to draw attention.
            out.append("%" + spec)
    return "".join(out)


def format_printf(fmt: str, *args: Any) -> str:
    """User-level printf: understands %d %x %p %s %c %%, hex in upper case."""
    return _render(fmt, args, uppercase=True, allow_char=True)


def format_cprintf(fmt: str | None, *args: Any) -> str:
    """Console printf: understands %d %x %p %s %%, hex in lower case."""
    if fmt is None:
        raise ValueError("null fmt")
    return _render(fmt, args, uppercase=False, allow_char=False)