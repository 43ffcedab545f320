import stat

import pytest

from assoofs.device import BlockDevice
from assoofs.layout import (
    BLOCK_SIZE,
    LAST_RESERVED_BLOCK,
    MAX_FILESYSTEM_OBJECTS_SUPPORTED,
    ROOTDIR_BLOCK_NUMBER,
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
from assoofs.mkfs import (
    WELCOME_FILENAME,
    WELCOME_TEXT,
    WELCOMEFILE_DATABLOCK_NUMBER,
    WELCOMEFILE_INODE_NUMBER,
    format_image,
)
from assoofs.storage import DIR_RECORDS_PER_BLOCK, Storage


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(b"\0" * (MAX_FILESYSTEM_OBJECTS_SUPPORTED * BLOCK_SIZE))
    format_image(path)
    return path


@pytest.fixture
def storage(image):
    device = BlockDevice(image)
    yield Storage(device)
    device.close()


def reopen(path):
    device = BlockDevice(path)
    try:
        return Storage(device).superblock
    finally:
        device.close()


def test_superblock_values_from_mkfs(storage):
    assert storage.superblock.inodes_count == 2
    assert storage.superblock.free_blocks == 0b1111
    assert storage.superblock.free_inodes == 0b11


def test_blank_image_is_rejected(tmp_path):
    path = tmp_path / "blank.img"
    path.write_bytes(b"\0" * (4 * BLOCK_SIZE))
    with BlockDevice(path) as device:
        with pytest.raises(InvalidFilesystemError):
            Storage(device)


def test_wrong_block_size_is_rejected(tmp_path):
    path = tmp_path / "bad.img"
    path.write_bytes(b"\0" * (4 * BLOCK_SIZE))
    with BlockDevice(path) as device:
        device.write_block(SUPERBLOCK_BLOCK_NUMBER, SuperBlockInfo(block_size=512).pack())
        with pytest.raises(InvalidFilesystemError):
            Storage(device)


def test_allocate_inode_takes_lowest_free_and_persists(storage, image):
    inode_no = storage.allocate_inode()
    assert inode_no == WELCOMEFILE_INODE_NUMBER + 1
    assert reopen(image).free_inodes & (1 << inode_no)


def test_allocate_block_takes_first_after_reserved(storage, image):
    block = storage.allocate_block()
    assert block == WELCOMEFILE_DATABLOCK_NUMBER + 1
    assert reopen(image).free_blocks & (1 << block)


def test_inode_exhaustion(storage):
    taken = []
    with pytest.raises(NoSpaceError):
        while True:
            taken.append(storage.allocate_inode())
    assert taken == list(range(WELCOMEFILE_INODE_NUMBER + 1, MAX_FILESYSTEM_OBJECTS_SUPPORTED))


def test_block_exhaustion(storage):
    taken = []
    with pytest.raises(NoSpaceError):
        while True:
            taken.append(storage.allocate_block())
    assert taken == list(range(WELCOMEFILE_DATABLOCK_NUMBER + 1, MAX_FILESYSTEM_OBJECTS_SUPPORTED))
    assert all(block > LAST_RESERVED_BLOCK for block in taken)


def test_freed_numbers_are_reused(storage, image):
    inode_no = storage.allocate_inode()
    block = storage.allocate_block()
    storage.free_inode(inode_no)
    storage.free_block(block)
    superblock = reopen(image)
    assert not superblock.free_inodes & (1 << inode_no)
    assert not superblock.free_blocks & (1 << block)
    assert storage.allocate_inode() == inode_no
    assert storage.allocate_block() == block


def test_freeing_free_entries_changes_nothing(storage):
    before = (storage.superblock.free_inodes, storage.superblock.free_blocks)
    storage.free_inode(40)
    storage.free_block(40)
    assert (storage.superblock.free_inodes, storage.superblock.free_blocks) == before


def test_get_root_inode(storage):
    root = storage.get_inode_info(ROOTDIR_INODE_NUMBER)
    assert root.is_dir()
    assert root.data_block_number == ROOTDIR_BLOCK_NUMBER
    assert root.dir_children_count == 1


def test_get_welcome_inode(storage):
    welcome = storage.get_inode_info(WELCOMEFILE_INODE_NUMBER)
    assert welcome.is_regular()
    assert welcome.data_block_number == WELCOMEFILE_DATABLOCK_NUMBER
    assert welcome.file_size == len(WELCOME_TEXT) + 1


def test_get_missing_inode_raises(storage):
    with pytest.raises(EntryNotFoundError):
        storage.get_inode_info(7)


def test_add_inode_info_round_trip(storage, image):
    info = InodeInfo(mode=stat.S_IFREG | 0o644, inode_no=5, data_block_number=9, size=12)
    storage.add_inode_info(info)
    assert storage.superblock.inodes_count == info.inode_no + 1
    assert reopen(image).inodes_count == info.inode_no + 1
    assert storage.get_inode_info(5) == info


def test_add_lower_inode_keeps_count(storage):
    storage.add_inode_info(InodeInfo(mode=stat.S_IFREG, inode_no=5, data_block_number=9))
    storage.add_inode_info(InodeInfo(mode=stat.S_IFDIR, inode_no=2, data_block_number=4))
    assert storage.superblock.inodes_count == 6
    assert storage.get_inode_info(2).is_dir()


def test_save_inode_info_updates_store(storage, image):
    root = storage.get_inode_info(ROOTDIR_INODE_NUMBER)
    root.dir_children_count = 3
    storage.save_inode_info(root)
    with BlockDevice(image) as device:
        assert Storage(device).get_inode_info(ROOTDIR_INODE_NUMBER).dir_children_count == 3


def test_save_missing_inode_raises(storage):
    with pytest.raises(EntryNotFoundError):
        storage.save_inode_info(InodeInfo(mode=stat.S_IFREG, inode_no=9, data_block_number=9))


def test_read_root_dir_records(storage):
    root = storage.get_inode_info(ROOTDIR_INODE_NUMBER)
    assert storage.read_dir_records(root) == [
        DirRecordEntry(WELCOME_FILENAME, WELCOMEFILE_INODE_NUMBER)
    ]


def test_read_dir_records_of_file_raises(storage):
    welcome = storage.get_inode_info(WELCOMEFILE_INODE_NUMBER)
    with pytest.raises(NotDirectoryError):
        storage.read_dir_records(welcome)


def test_write_dir_records_round_trip(storage):
    root = storage.get_inode_info(ROOTDIR_INODE_NUMBER)
    records = storage.read_dir_records(root)
    records[0].entry_removed = True
    records.append(DirRecordEntry("notes", 2))
    storage.write_dir_records(root, records)
    root.dir_children_count = len(records)
    assert storage.read_dir_records(root) == records


def test_write_too_many_dir_records_raises(storage):
    root = storage.get_inode_info(ROOTDIR_INODE_NUMBER)
    records = [DirRecordEntry(f"f{n}", n) for n in range(DIR_RECORDS_PER_BLOCK + 1)]
    with pytest.raises(NoSpaceError):
        storage.write_dir_records(root, records)
    assert storage.read_dir_records(root) == [
        DirRecordEntry(WELCOME_FILENAME, WELCOMEFILE_INODE_NUMBER)
    ]