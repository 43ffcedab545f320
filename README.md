# assoofs

A very small block-based filesystem stored in an ordinary image file, and a
Python API to format such images and work with the files and directories on
them.

## Layout

Every block is 4096 bytes long.

| block | contents                        |
|-------|---------------------------------|
| 0     | superblock (magic `0x20200406`) |
| 1     | inode store                     |
| 2     | root directory records          |
| 3+    | data blocks, one per object     |

Each file or directory owns exactly one data block. A file therefore holds
at most 4096 bytes, and a directory holds at most 15 records of 272 bytes
each. Inode numbers and data blocks are tracked by two 64-bit bitmaps in
the superblock, so new objects get inode numbers 1 to 63 and data blocks
3 to 63. File names are stored in up to 255 bytes of UTF-8.

## Formatting an image

`mkassoofs` writes a fresh filesystem onto a file that already exists. It
does not create or grow the file, so make one first. An image of 64 blocks
(256 KiB) has room for every block the bitmaps can hand out:

```python
with open("disk.img", "wb") as image:
    image.truncate(64 * 4096)
```

Then format it:

```
mkassoofs disk.img
```

With no argument, or more than one, `mkassoofs` prints its usage line and
exits with status 1. It also exits with status 1 if the file cannot be
opened. Only the structures themselves are written; the rest of the image
is left as it was.

The same thing is available as `assoofs.mkfs.format_image(path)`. The
fresh filesystem has a root directory with one file, `README.txt`, holding
a short welcome message.

## Using an image from Python

```python
from assoofs.filesystem import Assoofs

with Assoofs.mount("disk.img") as fs:
    root = fs.root()
    for name, inode_no in fs.iterate(root):
        print(name, inode_no)

    readme = fs.lookup(root, "README.txt")
    print(fs.read(readme, 0, 4096))

    notes = fs.mkdir(root, "notes", 0o755)
    todo = fs.create(notes, "todo.txt", 0o644)
    fs.write(todo, b"buy milk\n", 0)

    fs.remove(notes, "todo.txt")
```

Inodes are `assoofs.layout.InodeInfo` objects. While the filesystem is
mounted, each inode number is backed by a single shared object, so a change
made through one reference, such as the file size growing after `write`,
can be seen through all of them.

- `lookup(parent, name)` returns the inode, or `None` when the name is not
  present.
- `iterate(directory)` returns `(name, inode_no)` pairs for the live entries,
  in the order they were created.
- `read(inode, offset, length)` returns at most `length` bytes and stops at
  the file size. It returns `b""` at or past the end of the file.
- `write(inode, data, offset)` writes into the file's block, grows the file
  size when the write ends past it, and returns the number of bytes written.
- `create` and `mkdir` keep only the permission bits of `mode`.
- `remove(parent, name)` marks the record as removed and frees the inode
  number and the data block. A directory that still has entries is removed
  all the same. A warning is logged in that case.

Removed records keep their slot in the directory block, so a slot is never
reused.

## Errors

All filesystem errors are in `assoofs.layout` and derive from
`AssoofsError`. Each carries a matching `errno` attribute.

- `NoSpaceError`: the inode or block bitmap is full, a write would pass the
  end of the file's block, or a directory block has no room left.
- `InvalidFilesystemError`: the image has a bad magic number or block size,
  or an inode of unknown type.
- `NotDirectoryError`: a directory operation was used on a file.
- `EntryNotFoundError`: removing a name that does not exist, or asking for
  an inode that is not in the store.

Two errors come from Python itself:

- `create` and `mkdir` raise `FileExistsError` when the name is already
  taken.
- `read` and `write` raise `ValueError` for a negative offset or length.

## Lower layers

- `assoofs.device.BlockDevice` reads and writes whole blocks of an image
  file. Reaching a block outside the file raises `AssoofsError`.
- `assoofs.storage.Storage` manages the superblock bitmaps, the inode store
  and directory records.
- `assoofs.layout` has the on-disk structures: `SuperBlockInfo`,
  `InodeInfo` and `DirRecordEntry`. Each has `pack()` and `unpack()`.

Progress messages go to the standard `logging` module under the `assoofs.*`
loggers.

## What it does not do

This package works on image files through its Python API only. It cannot
make an image appear as a mounted directory of the operating system. It
keeps no timestamps and no owners. It has no rename, no hard links, and no
files larger than one block.

## Tests

The tests are in `tests/` and run with pytest, which the `test` extra
installs.