"""Block-level access to an image file holding an assoofs filesystem."""

from __future__ import annotations

import os

from assoofs.layout import BLOCK_SIZE, AssoofsError


class BlockDevice:
    """An image file read and written in whole blocks.

    A trailing partial block counts as a block and reads back zero-padded.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = os.fspath(path)
        self._file = open(self.path, "r+b")
        size = os.fstat(self._file.fileno()).st_size
        self.block_count = -(-size // BLOCK_SIZE)

    @property
    def closed(self) -> bool:
        return self._file.closed

    def _seek_to(self, number: int) -> None:
        if self._file.closed:
            raise ValueError("I/O operation on a closed device")
        if not 0 <= number < self.block_count:
            raise AssoofsError(
                f"block {number} is outside the device ({self.block_count} blocks)"
            )
        self._file.seek(number * BLOCK_SIZE)

    def read_block(self, number: int) -> bytes:
        self._seek_to(number)
        return self._file.read(BLOCK_SIZE).ljust(BLOCK_SIZE, b"\0")

    def write_block(self, number: int, data: bytes) -> None:
        """Write ``data`` as block ``number``, zero-padding it to a whole block."""
        data = bytes(data)
        if len(data) > BLOCK_SIZE:
            raise ValueError(f"block data is {len(data)} bytes, more than {BLOCK_SIZE}")
        self._seek_to(number)
        self._file.write(data.ljust(BLOCK_SIZE, b"\0"))
        self._file.flush()

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> BlockDevice:
        return self

    def __exit__(self, *args) -> None:
        self.close()