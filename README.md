# memlite

Building blocks for a replicated, in-memory SQLite-style database node:

- **`memlite.wire`**: little-endian integer and float encoders
  (`encode_uint8` … `encode_uint64`, `encode_int64`, `encode_float`), NUL
  terminated text and length-prefixed blobs padded to 64-bit words
  (`encode_text`, `encode_blob`, `pad64`), and a `Cursor` that reads them back.
- **`memlite.tuple`**: encoding and decoding of tuples of database values
  (`Value`, `TupleEncoder`, `TupleDecoder`, `encode_tuple`, `decode_tuple`).
  A tuple is in either *params* format (a count byte and 8-bit type slots) or
  *row* format (4-bit type slots, count known to the reader).
- **`memlite.protocol`**: `ValueType`, `RequestType` and `ResponseType` codes,
  protocol version constants, and `NodeInfo` (id and address of a node).
- **`memlite.content`**: `Content`, `Page` and `SharedMemory`, the objects
  that hold volatile files in memory, plus `get_page_size` and
  `wal_calc_pgno` for database and WAL headers.
- **`memlite.vfs`**: `VolatileVfs`, a thread-safe in-memory file system that
  understands the main database and WAL file layouts, its `VolatileFile`
  handles, and `register_vfs` / `unregister_vfs` / `find_vfs`.
- **`memlite.snapshot`**: `read_file` and `write_file` to dump or restore a
  whole database or WAL file of a registered file system.
- **`memlite.tx`**: the replication transaction state machine
  (`Transaction`, `TxState`).
- **`memlite.errors`**: the exceptions `DqliteError`, `MisuseError`,
  `NoMemError`, `ProtocolError` and `ParseError`, each with a numeric `code`.

## Installation

```
pip install memlite
```

## Encoding a tuple

```python
from memlite.protocol import ValueType
from memlite.tuple import TupleFormat, Value, decode_tuple, encode_tuple

data = encode_tuple(
    [Value(ValueType.INTEGER, 7), Value(ValueType.TEXT, "hello")],
    TupleFormat.PARAMS,
)
values = decode_tuple(data, 0)   # n == 0 reads the count from the header
assert values[1].value == "hello"
```

Malformed or truncated input raises `memlite.errors.ParseError`.

## Using the volatile file system

```python
from memlite.snapshot import read_file, write_file
from memlite.vfs import OpenFlags, VolatileVfs, register_vfs

vfs = VolatileVfs("volatile", 64)
register_vfs(vfs)

# Page 1 of a database with 512-byte pages: the page size sits big-endian
# at byte 16 of the header.
page = bytearray(512)
page[16:18] = (512).to_bytes(2, "big")

flags = OpenFlags.CREATE | OpenFlags.READWRITE | OpenFlags.MAIN_DB
with vfs.open("test.db", flags) as db:
    db.write(page, 0)
    assert db.file_size() == 512

snapshot = read_file("volatile", "test.db")
write_file("volatile", "copy.db", snapshot)
```

A WAL file (name ending in `-wal`, opened with `OpenFlags.WAL`) can only be
created once its database file exists, and takes its page size from it.

Failing operations raise `memlite.vfs.VfsError`, whose `code` is a
`ResultCode`; short reads raise it with `IOERR_SHORT_READ` and the
zero-filled buffer in `data`. `VolatileVfs.last_error()` returns the last
`errno` value recorded by the file system.

## Replication transactions

`Transaction(id, conn)` tracks a write transaction through `TxState`. The
connection object must have a `replication` attribute (not `None` on a
leader) and `wal_replication_frames` / `wal_replication_undo` methods. On a
leader the transaction runs in dry-run mode and only updates its state.

## What this package does not do

There is no network server, client, cluster membership or consensus here,
and no command to run. The volatile file system is not plugged into Python's
`sqlite3` module: it is a standalone object that callers drive through
`VolatileFile` methods.

## Running the tests

```
pip install -e ".[test]"
pytest
```