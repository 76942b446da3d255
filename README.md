# xvfs

A compact Unix-style file system in plain Python, with no dependencies
beyond the standard library. It covers every layer of a small teaching
file system:

- `xvfs.layout` — the on-disk format: `Superblock`, `DiskInode`, `Dirent`,
  block geometry (`BSIZE`, `NDIRECT`, `MAXFILE`, `DIRSIZ`, ...) and the
  helpers `inode_block` and `bitmap_block`
- `xvfs.mkfs` — `ImageBuilder` and `build_image`, which lay out a fresh
  image and copy files into its root directory
- `xvfs.disk` — `MemDisk`, a block device held in memory, loaded from and
  saved to an image file
- `xvfs.bcache` — `BufferCache`, a fixed set of buffers recycled least
  recently used, with `bread`, `bwrite`, `brelse`, `readpage` and `writepage`
- `xvfs.journal` — `Journal`, a redo log that commits the writes of
  operations together and replays a committed transaction on start-up
- `xvfs.filesystem` — `FileSystem`: inode allocation and caching,
  reading and writing inode content, directory lookup and linking, and
  path lookup (`namei`, `nameiparent`)
- `xvfs.pipe`, `xvfs.files` — `Pipe`, a blocking ring-buffer pipe, and
  `FileTable`, a table of open files over pipes and inodes
- `xvfs.console`, `xvfs.keyboard` — `Console`, a line-editing input buffer
  (backspace, ^U, ^D, ^P) that records its echo, and `KeyboardDecoder`,
  which turns PC scan codes into characters
- `xvfs.grep`, `xvfs.formatting`, `xvfs.cli` — a matcher for `^ . * $`
  patterns, printf-style formatting, and `ls`, `cat` and `echo`

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command-line tools

Build an image whose root directory holds some files. A leading
underscore in a file name is dropped when it is stored:

```
xvfs-mkfs fs.img README _cat _ls
```

`--size`, `--ninodes`, `--nlog` and `--nswap` set the number of blocks,
inodes, log blocks and swap blocks (defaults 1000, 200, 30 and 400).

Print the lines of files, or of standard input, that match a pattern:

```
xvfs-grep '^ab*c$' notes.txt
```

List and print files stored in an image, or print arguments:

```
xvfs ls fs.img
xvfs ls fs.img /README
xvfs cat fs.img README
xvfs echo hello world
```

`xvfs ls` lists the root directory when no path is given; each line holds
the name padded to 14 characters, the inode type, the inode number and
the size. `xvfs cat` with no paths copies standard input to standard
output.

## Using the library

```python
from xvfs.mkfs import build_image
from xvfs.disk import MemDisk
from xvfs.filesystem import FileSystem
from xvfs.cli import ls, cat

build_image("fs.img", ["README"])
fs = FileSystem(MemDisk.from_file("fs.img"))
print("\n".join(ls(fs, "/")))
print(cat(fs, "README").decode())
```

Matching and formatting:

```python
from xvfs.grep import match
from xvfs.formatting import format_printf

match("^ab*c$", "abbc")   # True
match("x.z", "axyzb")     # True
format_printf("%s has %d blocks (%x)\n", "fs.img", 1000, 1000)
# 'fs.img has 1000 blocks (3E8)\n'
```

`format_printf` understands `%d`, `%x`, `%p`, `%s`, `%c` and `%%` and
writes hex in upper case; `format_cprintf` leaves out `%c` and writes hex
in lower case.

Errors are raised as `DiskError`, `CacheError`, `JournalError`,
`FileSystemError`, `FileError` or `PipeClosed`; path lookup raises
`FileNotFoundError` or `NotADirectoryError`, and `dirlink` raises
`FileExistsError`.

## What it does not do

There are no commands that change an existing image: no `mkdir`, `rm`,
`ln` or file creation from the command line, and `FileSystem` offers the
low-level pieces (`ialloc`, `writei`, `dirlink`) but no unlink or open
calls of its own. Changes made through `FileSystem` stay in its `MemDisk`
until `MemDisk.save` is called. There is no process model, shell, program
loading or swapping; the console and keyboard classes work on data handed
to them and drive no real device.