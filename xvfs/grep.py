"""Simple grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import Iterable, Iterator


def match(pattern: str, text: str) -> bool:
    """Return True if ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _match_here(pattern, 1, text, 0)
    return any(_match_here(pattern, 0, text, start) for start in range(len(text) + 1))


def _match_here(pattern: str, pi: int, text: str, ti: int) -> bool:
    """Match ``pattern[pi:]`` at the beginning of ``text[ti:]``."""
    while True:
        if pi == len(pattern):
            return True
        if pi + 1 < len(pattern) and pattern[pi + 1] == "*":
            return _match_star(pattern[pi], pattern, pi + 2, text, ti)
        if pattern[pi] == "$" and pi + 1 == len(pattern):
            return ti == len(text)
        if ti < len(text) and pattern[pi] in (".", text[ti]):
            pi += 1
            ti += 1
            continue
        return False


def _match_star(c: str, pattern: str, pi: int, text: str, ti: int) -> bool:
    """Match ``c*`` followed by ``pattern[pi:]`` at ``text[ti:]``."""
    while True:
        if _match_here(pattern, pi, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
            continue
        return False


def grep_stream(pattern: str, stream: Iterable[str]) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``.

    A final line without a newline is never reported.
    """
    for line in stream:
        if not line.endswith("\n"):
            continue
        if match(pattern, line[:-1]):
            yield line


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *paths = args

    if not paths:
        sys.stdout.writelines(grep_stream(pattern, sys.stdin))
        return 0

    for path in paths:
        try:
            handle = open(path, encoding="utf-8", errors="surrogateescape", newline="\n")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with handle:
            sys.stdout.writelines(grep_stream(pattern, handle))
    return 0