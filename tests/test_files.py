import io

import pytest

from xvfs.disk import MemDisk
from xvfs.files import FileError, FileKind, FileTable
from xvfs.filesystem import FileSystem
from xvfs.layout import Dirent, InodeType
from xvfs.mkfs import ImageBuilder


def make_fs():
    image = io.BytesIO()
    builder = ImageBuilder(image)
    root = builder.ialloc(InodeType.DIR)
    builder.iappend(root, Dirent(root, ".").pack())
    builder.iappend(root, Dirent(root, "..").pack())
    builder.write_bitmap(builder.freeblock)
    return FileSystem(MemDisk(image.getvalue()))


def open_new_file(table):
    fs = table.fs
    with fs.journal.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.iunlock(ip)
    f = table.alloc()
    f.kind = FileKind.INODE
    f.ip = ip
    f.readable = True
    f.writable = True
    return f


def test_alloc_until_full():
    table = FileTable(nfile=2)
    table.alloc()
    table.alloc()
    with pytest.raises(FileError):
        table.alloc()


def test_close_frees_slot_and_dup_counts():
    table = FileTable(nfile=1)
    f = table.alloc()
    assert table.dup(f) is f
    assert f.ref == 2
    table.close(f)
    assert f.ref == 1
    table.close(f)
    assert f.ref == 0 and f.kind is FileKind.NONE
    assert table.alloc() is f


def test_dup_and_close_of_free_entry_raise():
    table = FileTable(nfile=1)
    f = table.alloc()
    table.close(f)
    with pytest.raises(FileError):
        table.dup(f)
    with pytest.raises(FileError):
        table.close(f)


def test_pipe_round_trip_and_permissions():
    table = FileTable()
    reader, writer = table.open_pipe()
    assert table.write(writer, b"data") == 4
    assert table.read(reader, 10) == b"data"
    with pytest.raises(FileError):
        table.write(reader, b"x")
    with pytest.raises(FileError):
        table.read(writer, 1)


def test_closing_write_end_gives_eof():
    table = FileTable()
    reader, writer = table.open_pipe()
    table.write(writer, b"last")
    table.close(writer)
    assert table.read(reader, 10) == b"last"
    assert table.read(reader, 10) == b""


def test_open_pipe_without_room_releases_first_entry():
    table = FileTable(nfile=1)
    with pytest.raises(FileError):
        table.open_pipe()
    assert table.alloc().ref == 1


def test_stat_of_pipe_raises():
    table = FileTable()
    reader, _ = table.open_pipe()
    with pytest.raises(FileError):
        table.stat(reader)


def test_inode_write_read_round_trip_across_chunks():
    table = FileTable(make_fs())
    f = open_new_file(table)
    data = bytes(i % 253 for i in range(4000))
    assert table.write(f, data) == len(data)
    assert f.off == len(data)
    assert table.read(f, 10) == b""
    f.off = 0
    assert table.read(f, len(data)) == data
    st = table.stat(f)
    assert st.size == len(data)
    assert st.type == InodeType.FILE


def test_close_inode_file_drops_reference():
    table = FileTable(make_fs())
    f = open_new_file(table)
    ip = f.ip
    table.write(f, b"keep")
    table.close(f)
    assert ip.ref == 0


def test_inode_file_without_filesystem_raises():
    table = FileTable()
    f = table.alloc()
    f.kind = FileKind.INODE
    f.ip = object()
    f.readable = True
    with pytest.raises(FileError):
        table.read(f, 1)