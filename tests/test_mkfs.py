import io
import struct

import pytest

from xvfs.layout import (
    BPB,
    BSIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DiskInode,
    Dirent,
    InodeType,
    Superblock,
    inode_block,
)
from xvfs.mkfs import ImageBuilder, build_image, main


def _sector(image, n):
    return image[n * BSIZE:(n + 1) * BSIZE]


def _inode(image, sb, inum):
    start = inode_block(inum, sb) * BSIZE + (inum % IPB) * DiskInode.SIZE
    return DiskInode.unpack(image[start:start + DiskInode.SIZE])


def _contents(image, sb, inum):
    din = _inode(image, sb, inum)
    nblocks = -(-din.size // BSIZE)
    if din.addrs[NDIRECT]:
        indirect = struct.unpack(f"<{NINDIRECT}I", _sector(image, din.addrs[NDIRECT]))
    else:
        indirect = (0,) * NINDIRECT
    addrs = list(din.addrs[:NDIRECT]) + list(indirect)
    data = b"".join(
        _sector(image, a) if a else bytes(BSIZE) for a in addrs[:nblocks]
    )
    return data[:din.size]


@pytest.fixture
def builder():
    return ImageBuilder(io.BytesIO(), fssize=200, ninodes=16, nlog=10, nswap=8)


def test_superblock_written_and_layout_ordered(builder):
    image = builder.image.getvalue()
    assert len(image) == 200 * BSIZE
    sb = Superblock.unpack(_sector(image, 1))
    assert sb == builder.sb
    assert sb.logstart == sb.swapstart + sb.nswap
    assert sb.inodestart == sb.logstart + sb.nlog
    assert sb.bmapstart == sb.inodestart + builder.ninodeblocks
    assert sb.nblocks + builder.nmeta == sb.size


def test_swap_must_be_multiple_of_eight():
    with pytest.raises(ValueError):
        ImageBuilder(io.BytesIO(), fssize=200, ninodes=16, nlog=10, nswap=5)


def test_image_too_small_for_metadata():
    with pytest.raises(ValueError):
        ImageBuilder(io.BytesIO(), fssize=20, ninodes=16, nlog=10, nswap=8)


def test_sector_round_trip_pads_short_data(builder):
    builder.write_sector(150, b"abc")
    assert builder.read_sector(150) == b"abc" + bytes(BSIZE - 3)


def test_write_sector_rejects_oversized(builder):
    with pytest.raises(ValueError):
        builder.write_sector(150, bytes(BSIZE + 1))


def test_read_sector_past_end(builder):
    with pytest.raises(OSError):
        builder.read_sector(500)


def test_ialloc_hands_out_sequential_inodes(builder):
    first = builder.ialloc(InodeType.DIR)
    second = builder.ialloc(InodeType.FILE)
    assert first == ROOTINO
    assert second == first + 1
    din = builder.read_inode(second)
    assert din.type == InodeType.FILE
    assert din.nlink == 1
    assert din.size == 0


def test_ialloc_runs_out(builder):
    for _ in range(15):
        builder.ialloc(InodeType.FILE)
    with pytest.raises(ValueError):
        builder.ialloc(InodeType.FILE)


def test_inode_round_trip(builder):
    din = DiskInode(type=2, nlink=3, size=99, addrs=list(range(NDIRECT + 1)))
    builder.write_inode(5, din)
    assert builder.read_inode(5) == din
    assert builder.read_inode(4) == DiskInode()


def test_iappend_uses_first_free_block(builder):
    inum = builder.ialloc(InodeType.FILE)
    builder.iappend(inum, b"hello")
    din = builder.read_inode(inum)
    assert din.size == 5
    assert din.addrs[0] == builder.nmeta
    assert builder.read_sector(din.addrs[0]).startswith(b"hello")


def test_iappend_in_pieces_through_indirect_block(builder):
    inum = builder.ialloc(InodeType.FILE)
    data = bytes(i % 251 for i in range(NDIRECT * BSIZE + 700))
    for start in range(0, len(data), 300):
        builder.iappend(inum, data[start:start + 300])
    image = builder.image.getvalue()
    din = builder.read_inode(inum)
    assert din.addrs[NDIRECT] != 0
    assert _contents(image, builder.sb, inum) == data


def test_iappend_rejects_file_too_large():
    big = ImageBuilder(io.BytesIO(), fssize=400, ninodes=16, nlog=10, nswap=8)
    inum = big.ialloc(InodeType.FILE)
    with pytest.raises(ValueError):
        big.iappend(inum, bytes(MAXFILE * BSIZE + 1))


def test_write_bitmap_marks_exactly_used_blocks(builder):
    builder.write_bitmap(10)
    bitmap = builder.read_sector(builder.sb.bmapstart)
    assert bitmap[0] == 0xFF
    assert bitmap[1] == 0x03
    assert bitmap[2:] == bytes(BSIZE - 2)


def test_write_bitmap_limit(builder):
    with pytest.raises(ValueError):
        builder.write_bitmap(BPB)


def test_build_image_root_directory(tmp_path):
    cat = tmp_path / "_cat"
    cat.write_bytes(b"meow\n" * 300)
    readme = tmp_path / "README"
    readme.write_bytes(b"docs")
    out = tmp_path / "fs.img"

    result = build_image(out, [cat, readme], 400, 32, 10, 8)
    image = out.read_bytes()
    sb = Superblock.unpack(_sector(image, 1))
    assert sb == result.sb

    root = _inode(image, sb, ROOTINO)
    assert root.type == InodeType.DIR
    assert root.size % BSIZE == 0

    raw = _contents(image, sb, ROOTINO)
    entries = [Dirent.unpack(raw[i:i + Dirent.SIZE]) for i in range(0, len(raw), Dirent.SIZE)]
    live = {e.name: e.inum for e in entries if e.inum}
    assert set(live) == {".", "..", "cat", "README"}
    assert live["."] == ROOTINO
    assert live[".."] == ROOTINO
    assert _contents(image, sb, live["cat"]) == cat.read_bytes()
    assert _contents(image, sb, live["README"]) == readme.read_bytes()


def test_build_image_bitmap_matches_allocation(tmp_path):
    src = tmp_path / "data"
    src.write_bytes(bytes(2000))
    out = tmp_path / "fs.img"
    result = build_image(out, [src], 400, 32, 10, 8)
    image = out.read_bytes()
    bitmap = _sector(image, result.sb.bmapstart)
    for i in range(result.freeblock + 16):
        assert bool(bitmap[i // 8] & (1 << (i % 8))) == (i < result.freeblock)


def test_main_creates_image(tmp_path, capsys):
    src = tmp_path / "notes"
    src.write_bytes(b"text")
    out = tmp_path / "fs.img"
    code = main(
        ["--size", "400", "--ninodes", "32", "--nlog", "10", "--nswap", "8", str(out), str(src)]
    )
    assert code == 0
    assert out.stat().st_size == 400 * BSIZE
    assert "balloc: first" in capsys.readouterr().out


def test_main_missing_input(tmp_path, capsys):
    out = tmp_path / "fs.img"
    code = main(
        ["--size", "400", "--nswap", "8", "--nlog", "10", str(out), str(tmp_path / "absent")]
    )
    assert code == 1
    assert "absent" in capsys.readouterr().err