"""Write a fresh assoofs filesystem onto an existing image or device."""

from __future__ import annotations

import logging
import os
import stat
import sys
from collections.abc import Sequence

from assoofs.layout import (
    BLOCK_SIZE,
    LAST_RESERVED_BLOCK,
    LAST_RESERVED_INODE,
    MAGIC,
    ROOTDIR_BLOCK_NUMBER,
    ROOTDIR_INODE_NUMBER,
    DirRecordEntry,
    InodeInfo,
    SuperBlockInfo,
)

WELCOME_TEXT = b"Hola mundo, os saludo desde un sistema de ficheros ASSOOFS.\n"
WELCOME_FILENAME = "README.txt"
WELCOMEFILE_DATABLOCK_NUMBER = LAST_RESERVED_BLOCK + 1
WELCOMEFILE_INODE_NUMBER = LAST_RESERVED_INODE + 1

_log = logging.getLogger(__name__)


def format_image(path: str | os.PathLike) -> None:
    """Lay out the superblock, inode store, root directory and welcome file.

    The file must already exist. Gaps between the structures are skipped,
    not zeroed, so earlier contents there are left as they were.
    """
    body = WELCOME_TEXT + b"\0"
    superblock = SuperBlockInfo(
        version=1,
        magic=MAGIC,
        block_size=BLOCK_SIZE,
        inodes_count=2,
        free_blocks=0b1111,
        free_inodes=0b11,
    )
    root = InodeInfo(
        mode=stat.S_IFDIR,
        inode_no=ROOTDIR_INODE_NUMBER,
        data_block_number=ROOTDIR_BLOCK_NUMBER,
        size=1,
    )
    welcome = InodeInfo(
        mode=stat.S_IFREG,
        inode_no=WELCOMEFILE_INODE_NUMBER,
        data_block_number=WELCOMEFILE_DATABLOCK_NUMBER,
        size=len(body),
    )
    record = DirRecordEntry(WELCOME_FILENAME, WELCOMEFILE_INODE_NUMBER)

    with open(path, "r+b") as device:
        device.write(superblock.pack())
        _log.info("Super block written successfully.")

        device.write(root.pack())
        _log.info("Root directory inode written successfully.")

        device.write(welcome.pack())
        _log.info("Welcome file inode written successfully.")
        device.seek(BLOCK_SIZE - 2 * InodeInfo.SIZE, os.SEEK_CUR)
        _log.info("Inode store padding skipped.")

        device.write(record.pack())
        _log.info("Root directory entry for the welcome file written successfully.")
        device.seek(BLOCK_SIZE - DirRecordEntry.SIZE, os.SEEK_CUR)
        _log.info("Root directory padding skipped.")

        device.write(body[: welcome.file_size])
        _log.info("Welcome file body written successfully.")


def main(argv: Sequence[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("Usage: mkassoofs <device>")
        return 1
    try:
        format_image(args[0])
    except OSError as exc:
        print(f"Error opening the device: {exc}", file=sys.stderr)
        return 1
    print(f"assoofs filesystem written to {args[0]}")
    return 0


if __name__ == "__main__":
    sys.exit(main())