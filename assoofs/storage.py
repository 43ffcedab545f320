"""Persistent metadata of a mounted assoofs image: superblock, inode store, directories."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from assoofs.device import BlockDevice
from assoofs.layout import (
    BLOCK_SIZE,
    INODESTORE_BLOCK_NUMBER,
    LAST_RESERVED_BLOCK,
    MAGIC,
    MAX_FILESYSTEM_OBJECTS_SUPPORTED,
    ROOTDIR_INODE_NUMBER,
    SUPERBLOCK_BLOCK_NUMBER,
    DirRecordEntry,
    EntryNotFoundError,
    InodeInfo,
    InvalidFilesystemError,
    NoSpaceError,
    NotDirectoryError,
    SuperBlockInfo,
)

INODES_PER_BLOCK = BLOCK_SIZE // InodeInfo.SIZE
DIR_RECORDS_PER_BLOCK = BLOCK_SIZE // DirRecordEntry.SIZE

_log = logging.getLogger(__name__)


class Storage:
    """Reads and writes the on-disk metadata through a :class:`BlockDevice`.

    The superblock is kept in memory and written back after every change.
    """

    def __init__(self, device: BlockDevice) -> None:
        self.device = device
        superblock = SuperBlockInfo.unpack(device.read_block(SUPERBLOCK_BLOCK_NUMBER))
        if superblock.magic != MAGIC:
            raise InvalidFilesystemError(f"invalid magic number: {superblock.magic:#x}")
        if superblock.block_size != BLOCK_SIZE:
            raise InvalidFilesystemError(f"invalid block size: {superblock.block_size}")
        _log.info(
            "Superblock read (magic: %#x, blocksize: %d)",
            superblock.magic,
            superblock.block_size,
        )
        self.superblock = superblock

    def save_superblock(self) -> None:
        """Write the in-memory superblock back to block 0."""
        self.device.write_block(SUPERBLOCK_BLOCK_NUMBER, self.superblock.pack())
        _log.info("Superblock info saved.")

    @staticmethod
    def _first_clear_bit(mask: int, start: int) -> int:
        for bit in range(start, MAX_FILESYSTEM_OBJECTS_SUPPORTED):
            if not mask & (1 << bit):
                return bit
        raise NoSpaceError("no free entries left in the bitmap")

    def allocate_inode(self) -> int:
        """Reserve and return the lowest free inode number after the root's."""
        try:
            inode_no = self._first_clear_bit(
                self.superblock.free_inodes, ROOTDIR_INODE_NUMBER + 1
            )
        except NoSpaceError:
            raise NoSpaceError("no free inodes") from None
        self.superblock.free_inodes |= 1 << inode_no
        self.save_superblock()
        _log.info("Found free inode: %d", inode_no)
        return inode_no

    def allocate_block(self) -> int:
        """Reserve and return the lowest free data block after the reserved ones."""
        try:
            block = self._first_clear_bit(
                self.superblock.free_blocks, LAST_RESERVED_BLOCK + 1
            )
        except NoSpaceError:
            raise NoSpaceError("no free blocks") from None
        self.superblock.free_blocks |= 1 << block
        self.save_superblock()
        _log.info("Found free block: %d", block)
        return block

    def free_inode(self, inode_no: int) -> None:
        """Mark an inode number free; freeing a free one is ignored."""
        bit = 1 << inode_no
        if not self.superblock.free_inodes & bit:
            _log.warning("Attempt to free already free inode %d", inode_no)
            return
        self.superblock.free_inodes &= ~bit
        self.save_superblock()
        _log.info("Inode %d marked as free.", inode_no)

    def free_block(self, block: int) -> None:
        """Mark a data block free; freeing a free one is ignored."""
        bit = 1 << block
        if not self.superblock.free_blocks & bit:
            _log.warning("Attempt to free already free block %d", block)
            return
        self.superblock.free_blocks &= ~bit
        self.save_superblock()
        _log.info("Block %d marked as free.", block)

    def _inode_store(self) -> bytearray:
        return bytearray(self.device.read_block(INODESTORE_BLOCK_NUMBER))

    @staticmethod
    def _slots(store: bytes, count: int) -> Iterator[tuple[int, InodeInfo]]:
        for slot in range(min(count, INODES_PER_BLOCK)):
            offset = slot * InodeInfo.SIZE
            yield offset, InodeInfo.unpack(store[offset : offset + InodeInfo.SIZE])

    def get_inode_info(self, inode_no: int) -> InodeInfo:
        """Return the stored inode with this number."""
        store = self._inode_store()
        for _, info in self._slots(store, self.superblock.inodes_count):
            if info.inode_no == inode_no:
                _log.info("Found inode %d (mode: %o)", inode_no, info.mode)
                return info
        raise EntryNotFoundError(f"inode {inode_no} not found in the inode store")

    def add_inode_info(self, info: InodeInfo) -> None:
        """Store a new inode in the slot matching its number."""
        if info.inode_no >= INODES_PER_BLOCK:
            raise NoSpaceError(f"inode {info.inode_no} does not fit the inode store")
        if self.superblock.inodes_count <= info.inode_no:
            self.superblock.inodes_count = info.inode_no + 1
            self.save_superblock()
        store = self._inode_store()
        offset = info.inode_no * InodeInfo.SIZE
        store[offset : offset + InodeInfo.SIZE] = info.pack()
        self.device.write_block(INODESTORE_BLOCK_NUMBER, bytes(store))
        _log.info("Inode info for inode %d added.", info.inode_no)

    def save_inode_info(self, info: InodeInfo) -> None:
        """Overwrite the stored copy of an existing inode."""
        store = self._inode_store()
        # The search looks one slot past the counted inodes.
        for offset, stored in self._slots(store, self.superblock.inodes_count + 1):
            if stored.inode_no == info.inode_no:
                store[offset : offset + InodeInfo.SIZE] = info.pack()
                self.device.write_block(INODESTORE_BLOCK_NUMBER, bytes(store))
                _log.info("Inode info for %d saved.", info.inode_no)
                return
        raise EntryNotFoundError(f"inode {info.inode_no} not found in store to save")

    def read_dir_records(self, directory: InodeInfo) -> list[DirRecordEntry]:
        """Return every record of a directory, removed ones included, in order."""
        if not directory.is_dir():
            raise NotDirectoryError(f"inode {directory.inode_no} is not a directory")
        block = self.device.read_block(directory.data_block_number)
        count = min(directory.dir_children_count, DIR_RECORDS_PER_BLOCK)
        return [
            DirRecordEntry.unpack(
                block[index * DirRecordEntry.SIZE : (index + 1) * DirRecordEntry.SIZE]
            )
            for index in range(count)
        ]

    def write_dir_records(
        self, directory: InodeInfo, records: Iterable[DirRecordEntry]
    ) -> None:
        """Write records from the start of a directory's block, keeping what follows."""
        if not directory.is_dir():
            raise NotDirectoryError(f"inode {directory.inode_no} is not a directory")
        packed = b"".join(record.pack() for record in records)
        if len(packed) > DIR_RECORDS_PER_BLOCK * DirRecordEntry.SIZE:
            raise NoSpaceError("too many entries for a single directory block")
        block = bytearray(self.device.read_block(directory.data_block_number))
        block[: len(packed)] = packed
        self.device.write_block(directory.data_block_number, bytes(block))