"""On-disk structures and constants of an assoofs image."""

from __future__ import annotations

import errno
import stat
import struct
from dataclasses import dataclass
from typing import ClassVar

MAGIC = 0x20200406
BLOCK_SIZE = 4096
FILENAME_MAXLEN = 255

SUPERBLOCK_BLOCK_NUMBER = 0
INODESTORE_BLOCK_NUMBER = 1
ROOTDIR_BLOCK_NUMBER = 2
ROOTDIR_INODE_NUMBER = 0
LAST_RESERVED_BLOCK = ROOTDIR_BLOCK_NUMBER
LAST_RESERVED_INODE = ROOTDIR_INODE_NUMBER
MAX_FILESYSTEM_OBJECTS_SUPPORTED = 64

_FILENAME_ENCODING = "utf-8"
_FILENAME_ERRORS = "surrogateescape"


class AssoofsError(Exception):
    """Base error of the filesystem; ``errno`` gives the matching error number."""

    errno = errno.EIO


class NoSpaceError(AssoofsError):
    """No free inode, no free block, or a write past the single data block."""

    errno = errno.ENOSPC


class InvalidFilesystemError(AssoofsError):
    """The image is not an assoofs filesystem or holds an unknown inode type."""

    errno = errno.EINVAL


class NotDirectoryError(AssoofsError):
    """A directory operation was asked of an inode that is not a directory."""

    errno = errno.ENOTDIR


class EntryNotFoundError(AssoofsError):
    """A directory entry or inode could not be found."""

    errno = errno.ENOENT


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < layout.size:
        raise ValueError(f"{what} needs {layout.size} bytes, got {len(data)}")
    return layout.unpack_from(data)


def _pack(layout: struct.Struct, what: str, *values) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(f"cannot encode {what}: {exc}") from exc


@dataclass
class SuperBlockInfo:
    """The superblock, stored alone in block 0 and padded to a whole block."""

    version: int = 1
    magic: int = MAGIC
    block_size: int = BLOCK_SIZE
    inodes_count: int = 0
    free_blocks: int = 0
    free_inodes: int = 0

    _LAYOUT: ClassVar[struct.Struct] = struct.Struct("<6Q4048x")
    SIZE: ClassVar[int] = _LAYOUT.size

    def pack(self) -> bytes:
        return _pack(
            self._LAYOUT,
            "superblock",
            self.version,
            self.magic,
            self.block_size,
            self.inodes_count,
            self.free_blocks,
            self.free_inodes,
        )

    @classmethod
    def unpack(cls, data: bytes) -> SuperBlockInfo:
        return cls(*_unpack(cls._LAYOUT, data, "superblock"))


@dataclass
class InodeInfo:
    """A persistent inode; ``size`` is the file size or the directory's entry count."""

    mode: int
    inode_no: int
    data_block_number: int
    size: int = 0

    _LAYOUT: ClassVar[struct.Struct] = struct.Struct("<I4x3Q")
    SIZE: ClassVar[int] = _LAYOUT.size

    @property
    def file_size(self) -> int:
        return self.size

    @file_size.setter
    def file_size(self, value: int) -> None:
        self.size = value

    @property
    def dir_children_count(self) -> int:
        return self.size

    @dir_children_count.setter
    def dir_children_count(self, value: int) -> None:
        self.size = value

    def pack(self) -> bytes:
        return _pack(
            self._LAYOUT,
            "inode",
            self.mode,
            self.inode_no,
            self.data_block_number,
            self.size,
        )

    @classmethod
    def unpack(cls, data: bytes) -> InodeInfo:
        return cls(*_unpack(cls._LAYOUT, data, "inode"))

    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    def is_regular(self) -> bool:
        return stat.S_ISREG(self.mode)


@dataclass
class DirRecordEntry:
    """One name-to-inode record in a directory's data block."""

    filename: str
    inode_no: int
    entry_removed: bool = False

    _LAYOUT: ClassVar[struct.Struct] = struct.Struct("<255sx2Q")
    SIZE: ClassVar[int] = _LAYOUT.size

    def pack(self) -> bytes:
        name = self.filename.encode(_FILENAME_ENCODING, _FILENAME_ERRORS)
        return _pack(
            self._LAYOUT,
            "directory entry",
            name[:FILENAME_MAXLEN],
            self.inode_no,
            int(self.entry_removed),
        )

    @classmethod
    def unpack(cls, data: bytes) -> DirRecordEntry:
        raw_name, inode_no, removed = _unpack(cls._LAYOUT, data, "directory entry")
        name = raw_name.split(b"\0", 1)[0].decode(_FILENAME_ENCODING, _FILENAME_ERRORS)
        return cls(name, inode_no, removed != 0)