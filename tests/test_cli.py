import pytest

from xvfs.cli import cat, echo, fmtname, ls, main
from xvfs.disk import MemDisk
from xvfs.filesystem import FileSystem
from xvfs.layout import DIRSIZ, InodeType
from xvfs.mkfs import build_image

HELLO = b"hello world\n"
BIG = bytes(range(256)) * 12


@pytest.fixture
def image(tmp_path):
    hello = tmp_path / "hello.txt"
    hello.write_bytes(HELLO)
    prog = tmp_path / "_prog"
    prog.write_bytes(BIG)
    path = tmp_path / "fs.img"
    build_image(path, [hello, prog])
    return path


@pytest.fixture
def fs(image):
    return FileSystem(MemDisk.from_file(image))


def test_fmtname_pads_short_names():
    name = fmtname("a/b/c")
    assert len(name) == DIRSIZ
    assert name.strip() == "c"


def test_fmtname_keeps_long_names():
    long_name = "x" * (DIRSIZ + 3)
    assert fmtname("dir/" + long_name) == long_name


def test_echo_joins_arguments():
    assert echo(["hello", "world"]) == "hello world\n"


def test_echo_without_arguments_prints_nothing():
    assert echo([]) == ""


def test_cat_returns_file_content(fs):
    assert cat(fs, "hello.txt") == HELLO


def test_cat_multi_block_file(fs):
    assert cat(fs, "/prog") == BIG


def test_cat_missing_file(fs):
    with pytest.raises(FileNotFoundError):
        cat(fs, "missing")


def test_ls_root_lists_all_entries(fs):
    lines = ls(fs, ".")
    names = {line.split()[0] for line in lines}
    assert names == {".", "..", "hello.txt", "prog"}


def test_ls_entry_fields(fs):
    lines = ls(fs, ".")
    by_name = {line.split()[0]: line.split() for line in lines}
    assert by_name["hello.txt"][1] == str(int(InodeType.FILE))
    assert by_name["hello.txt"][3] == str(len(HELLO))
    assert by_name["prog"][3] == str(len(BIG))
    assert by_name["."][1] == str(int(InodeType.DIR))
    assert by_name["."][2] == by_name[".."][2]


def test_ls_single_file(fs):
    lines = ls(fs, "hello.txt")
    assert len(lines) == 1
    assert lines[0].startswith(fmtname("hello.txt") + " ")
    assert lines[0].split()[3] == str(len(HELLO))


def test_ls_path_too_long(fs):
    assert ls(fs, "/" * 600) == ["ls: path too long"]


def test_ls_missing_path(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "nothing/here")


def test_main_echo(capsys):
    assert main(["echo", "a", "b"]) == 0
    assert capsys.readouterr().out == "a b\n"


def test_main_cat(image, capsys):
    assert main(["cat", str(image), "hello.txt"]) == 0
    assert capsys.readouterr().out == HELLO.decode()


def test_main_cat_missing(image, capsys):
    assert main(["cat", str(image), "nope"]) == 1
    assert "cat: cannot open nope" in capsys.readouterr().out


def test_main_ls(image, capsys):
    assert main(["ls", str(image)]) == 0
    out = capsys.readouterr().out
    assert "hello.txt" in out
    assert "prog" in out


def test_main_ls_missing(image, capsys):
    assert main(["ls", str(image), "nope"]) == 1
    assert "ls: cannot open nope" in capsys.readouterr().err