"""Small user commands that work on a file system image: ls, cat and echo."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from xvfs.disk import DiskError, MemDisk
from xvfs.filesystem import FileSystem, FileSystemError, Inode, Stat
from xvfs.formatting import format_printf
from xvfs.layout import BSIZE, DIRSIZ, Dirent, InodeType

_PATH_BUF = 512


def fmtname(path: str) -> str:
    """Last element of ``path``, blank-padded to ``DIRSIZ`` characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _open(fs: FileSystem, path: str) -> Inode:
    try:
        with fs.journal.transaction():
            return fs.namei(path)
    except (OSError, FileSystemError) as exc:
        raise FileNotFoundError(path) from exc


def _close(fs: FileSystem, ip: Inode) -> None:
    with fs.journal.transaction():
        fs.iput(ip)


def _stat(fs: FileSystem, path: str) -> Stat:
    ip = _open(fs, path)
    try:
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlock(ip)
    finally:
        _close(fs, ip)


def _line(path: str, st: Stat) -> str:
    return format_printf("%s %d %d %d", fmtname(path), int(st.type), st.ino, st.size)


def _dir_names(fs: FileSystem, ip: Inode) -> list[str]:
    names = []
    for off in range(0, ip.size, Dirent.SIZE):
        raw = fs.readi(ip, off, Dirent.SIZE)
        if len(raw) != Dirent.SIZE:
            break
        de = Dirent.unpack(raw)
        if de.inum != 0:
            names.append(de.name[:DIRSIZ])
    return names


def ls(fs: FileSystem, path: str) -> list[str]:
    """List ``path``: one line per file, or one per entry of a directory.

    Raises FileNotFoundError when ``path`` cannot be opened.
    """
    ip = _open(fs, path)
    try:
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            names = _dir_names(fs, ip) if st.type == InodeType.DIR else []
        finally:
            fs.iunlock(ip)
    finally:
        _close(fs, ip)

    if st.type == InodeType.FILE:
        return [_line(path, st)]
    if st.type != InodeType.DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _PATH_BUF:
        return ["ls: path too long"]

    lines = []
    for name in names:
        entry = f"{path}/{name}"
        try:
            entry_st = _stat(fs, entry)
        except FileNotFoundError:
            lines.append(f"ls: cannot stat {entry}")
            continue
        lines.append(_line(entry, entry_st))
    return lines


def cat(fs: FileSystem, path: str) -> bytes:
    """Return the whole content of ``path``.

    Raises FileNotFoundError when ``path`` cannot be opened.
    """
    ip = _open(fs, path)
    try:
        fs.ilock(ip)
        try:
            chunks = []
            off = 0
            while chunk := fs.readi(ip, off, BSIZE):
                chunks.append(chunk)
                off += len(chunk)
            return b"".join(chunks)
        finally:
            fs.iunlock(ip)
    finally:
        _close(fs, ip)


def echo(args: Sequence[str]) -> str:
    """Arguments separated by spaces and ended by a newline; empty without any."""
    if not args:
        return ""
    return " ".join(args) + "\n"


def _load(image: str) -> FileSystem:
    return FileSystem(MemDisk.from_file(image))


def _write_bytes(data: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="xvfs", description="Inspect a file system image.")
    commands = parser.add_subparsers(dest="command", required=True)
    echo_cmd = commands.add_parser("echo", help="print the arguments")
    echo_cmd.add_argument("args", nargs="*")
    ls_cmd = commands.add_parser("ls", help="list files in the image")
    ls_cmd.add_argument("image")
    ls_cmd.add_argument("paths", nargs="*")
    cat_cmd = commands.add_parser("cat", help="print files from the image")
    cat_cmd.add_argument("image")
    cat_cmd.add_argument("paths", nargs="*")
    args = parser.parse_args(argv)

    if args.command == "echo":
        sys.stdout.write(echo(args.args))
        return 0

    if args.command == "cat" and not args.paths:
        _write_bytes(sys.stdin.buffer.read())
        return 0

    try:
        fs = _load(args.image)
    except (OSError, DiskError, FileSystemError, ValueError) as exc:
        print(f"{args.command}: cannot load image {args.image}: {exc}", file=sys.stderr)
        return 1

    if args.command == "ls":
        status = 0
        for path in args.paths or ["."]:
            try:
                lines = ls(fs, path)
            except FileNotFoundError:
                print(f"ls: cannot open {path}", file=sys.stderr)
                status = 1
                continue
            for line in lines:
                print(line)
        return status

    for path in args.paths:
        try:
            data = cat(fs, path)
        except FileNotFoundError:
            print(f"cat: cannot open {path}")
            return 1
        _write_bytes(data)
    return 0