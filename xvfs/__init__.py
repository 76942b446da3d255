"""A small Unix-style file system: image builder, buffer cache, journal, inodes, pipes, console and tools."""

__version__ = "0.1.0"