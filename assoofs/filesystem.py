"""File and directory operations on a mounted assoofs image."""

from __future__ import annotations

import logging
import os
import stat

from assoofs.device import BlockDevice
from assoofs.layout import (
    BLOCK_SIZE,
    ROOTDIR_INODE_NUMBER,
    AssoofsError,
    DirRecordEntry,
    EntryNotFoundError,
    InodeInfo,
    InvalidFilesystemError,
    NoSpaceError,
    NotDirectoryError,
)
from assoofs.storage import Storage

_log = logging.getLogger(__name__)


class Assoofs:
    """A mounted assoofs filesystem.

    Inodes are handed out as :class:`InodeInfo` objects. Each inode number maps
    to one shared object while mounted, so changes made through one
    reference are seen through every other.
    """

    def __init__(self, device: BlockDevice) -> None:
        self.device = device
        self.storage = Storage(device)
        self._inodes: dict[int, InodeInfo] = {}
        self._root = self._get_inode(ROOTDIR_INODE_NUMBER)
        _log.info("Filesystem mounted with root inode %d", self._root.inode_no)

    @classmethod
    def mount(cls, path: str | os.PathLike) -> Assoofs:
        """Open the image at ``path`` and mount the filesystem on it."""
        device = BlockDevice(path)
        try:
            return cls(device)
        except BaseException:
            device.close()
            raise

    def root(self) -> InodeInfo:
        """Return the root directory inode."""
        return self._root

    def _get_inode(self, inode_no: int) -> InodeInfo:
        cached = self._inodes.get(inode_no)
        if cached is not None:
            return cached
        info = self.storage.get_inode_info(inode_no)
        if not (info.is_dir() or info.is_regular()):
            raise InvalidFilesystemError(
                f"unknown inode type for inode {inode_no} (mode: {info.mode:o})"
            )
        self._inodes[inode_no] = info
        return info

    def _require_dir(self, directory: InodeInfo) -> None:
        if not directory.is_dir():
            raise NotDirectoryError(f"inode {directory.inode_no} is not a directory")

    def _find_record(
        self, records: list[DirRecordEntry], name: str
    ) -> DirRecordEntry | None:
        return next(
            (r for r in records if not r.entry_removed and r.filename == name), None
        )

    def lookup(self, parent: InodeInfo, name: str) -> InodeInfo | None:
        """Return the inode named ``name`` in ``parent``, or None if there is none."""
        records = self.storage.read_dir_records(parent)
        record = self._find_record(records, name)
        if record is None:
            _log.info("Entry %r not found in inode %d", name, parent.inode_no)
            return None
        _log.info("Found entry %r pointing to inode %d", name, record.inode_no)
        return self._get_inode(record.inode_no)

    def iterate(self, directory: InodeInfo) -> list[tuple[str, int]]:
        """Return ``(name, inode_no)`` for every live entry of a directory, in order."""
        self._require_dir(directory)
        return [
            (record.filename, record.inode_no)
            for record in self.storage.read_dir_records(directory)
            if not record.entry_removed
        ]

    def read(self, inode: InodeInfo, offset: int = 0, length: int = BLOCK_SIZE) -> bytes:
        """Read up to ``length`` bytes from ``offset``; empty at end of file."""
        if offset < 0 or length < 0:
            raise ValueError("offset and length must not be negative")
        if offset >= inode.file_size:
            return b""
        block = self.device.read_block(inode.data_block_number)
        count = min(length, inode.file_size - offset)
        return block[offset : offset + count]

    def write(self, inode: InodeInfo, data: bytes, offset: int = 0) -> int:
        """Write ``data`` at ``offset`` within the file's single block.

        Returns the number of bytes written and grows the file size if needed.
        """
        if offset < 0:
            raise ValueError("offset must not be negative")
        data = bytes(data)
        end = offset + len(data)
        if end > BLOCK_SIZE:
            raise NoSpaceError(
                f"write past block boundary on inode {inode.inode_no}"
            )
        block = bytearray(self.device.read_block(inode.data_block_number))
        block[offset:end] = data
        self.device.write_block(inode.data_block_number, bytes(block))
        if end > inode.file_size:
            inode.file_size = end
            try:
                self.storage.save_inode_info(inode)
            except AssoofsError as exc:
                _log.error(
                    "Failed to save updated inode info for inode %d: %s",
                    inode.inode_no,
                    exc,
                )
        _log.info(
            "Wrote %d bytes for inode %d, new size %d",
            len(data),
            inode.inode_no,
            inode.file_size,
        )
        return len(data)

    def _new_entry(self, parent: InodeInfo, name: str, mode: int) -> InodeInfo:
        self._require_dir(parent)
        records = self.storage.read_dir_records(parent)
        if self._find_record(records, name) is not None:
            raise FileExistsError(f"{name!r} already exists in inode {parent.inode_no}")

        inode_no = self.storage.allocate_inode()
        try:
            block = self.storage.allocate_block()
        except NoSpaceError:
            self.storage.free_inode(inode_no)
            raise
        info = InodeInfo(mode=mode, inode_no=inode_no, data_block_number=block, size=0)
        try:
            self.storage.add_inode_info(info)
            records.append(DirRecordEntry(name, inode_no))
            self.storage.write_dir_records(parent, records)
        except AssoofsError:
            self.storage.free_block(block)
            self.storage.free_inode(inode_no)
            raise

        parent.dir_children_count += 1
        try:
            self.storage.save_inode_info(parent)
        except AssoofsError as exc:
            _log.error(
                "Failed to update parent inode %d count on disk: %s",
                parent.inode_no,
                exc,
            )
        self._inodes[inode_no] = info
        return info

    def create(self, parent: InodeInfo, name: str, mode: int = 0o644) -> InodeInfo:
        """Create an empty regular file in ``parent`` and return its inode."""
        info = self._new_entry(parent, name, stat.S_IFREG | stat.S_IMODE(mode))
        _log.info("Created file %r with inode %d", name, info.inode_no)
        return info

    def mkdir(self, parent: InodeInfo, name: str, mode: int = 0o755) -> InodeInfo:
        """Create an empty directory in ``parent`` and return its inode."""
        info = self._new_entry(parent, name, stat.S_IFDIR | stat.S_IMODE(mode))
        _log.info("Created directory %r with inode %d", name, info.inode_no)
        return info

    def remove(self, parent: InodeInfo, name: str) -> None:
        """Remove the entry ``name`` from ``parent`` and free its inode and block."""
        records = self.storage.read_dir_records(parent)
        record = self._find_record(records, name)
        if record is None:
            raise EntryNotFoundError(
                f"no directory entry {name!r} in inode {parent.inode_no}"
            )
        target = self._get_inode(record.inode_no)
        if target.is_dir() and target.dir_children_count > 0:
            _log.error("Removing non-empty directory inode %d", target.inode_no)

        record.entry_removed = True
        self.storage.write_dir_records(parent, records)
        self.storage.free_inode(target.inode_no)
        self.storage.free_block(target.data_block_number)
        self._inodes.pop(target.inode_no, None)
        _log.info("Removed entry %r", name)

    def close(self) -> None:
        self.device.close()

    def __enter__(self) -> Assoofs:
        return self

    def __exit__(self, *args) -> None:
        self.close()