import errno

import pytest

from memlite.content import WAL_FRAME_HDR_SIZE, WAL_HDR_SIZE, ShmLockFlags
from memlite.errors import MisuseError
from memlite.vfs import (
    OpenFlags,
    ResultCode,
    VfsError,
    VolatileVfs,
    find_vfs,
    register_vfs,
    unregister_vfs,
)

PAGE_SIZE = 512
DB_FLAGS = OpenFlags.READWRITE | OpenFlags.CREATE | OpenFlags.MAIN_DB
WAL_FLAGS = OpenFlags.READWRITE | OpenFlags.CREATE | OpenFlags.WAL


def db_page1(fill=0xAB):
    page = bytearray([fill]) * PAGE_SIZE
    page[16:18] = PAGE_SIZE.to_bytes(2, "big")
    return bytes(page)


def wal_header():
    hdr = bytearray(b"\x07" * WAL_HDR_SIZE)
    hdr[8:12] = PAGE_SIZE.to_bytes(4, "big")
    return bytes(hdr)


@pytest.fixture
def vfs():
    return VolatileVfs("test")


@pytest.fixture
def db(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    f.write(db_page1(), 0)
    return f


def test_open_missing_without_create(vfs):
    with pytest.raises(VfsError) as info:
        vfs.open("test.db", OpenFlags.READWRITE | OpenFlags.MAIN_DB)
    assert info.value.code == ResultCode.CANTOPEN
    assert vfs.last_error() == errno.ENOENT


def test_open_exclusive_existing(vfs, db):
    with pytest.raises(VfsError) as info:
        vfs.open("test.db", DB_FLAGS | OpenFlags.EXCLUSIVE)
    assert info.value.code == ResultCode.CANTOPEN
    assert vfs.last_error() == errno.EEXIST


def test_open_too_many_files():
    small = VolatileVfs("small", max_files=1)
    small.open("a.db", DB_FLAGS)
    with pytest.raises(VfsError) as info:
        small.open("b.db", DB_FLAGS)
    assert info.value.code == ResultCode.CANTOPEN
    assert small.last_error() == errno.ENFILE


def test_open_wal_without_database(vfs):
    with pytest.raises(VfsError) as info:
        vfs.open("test.db-wal", WAL_FLAGS)
    assert info.value.code == ResultCode.CORRUPT
    assert vfs.access("test.db-wal") is False


def test_read_empty_is_short_read(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    with pytest.raises(VfsError) as info:
        f.read(100, 0)
    assert info.value.code == ResultCode.IOERR_SHORT_READ
    assert info.value.data == bytes(100)


def test_db_write_and_read_back(vfs, db):
    page1 = db_page1()
    assert db.read(100, 0) == page1[:100]
    page2 = bytes([3]) * PAGE_SIZE
    db.write(page2, PAGE_SIZE)
    assert db.read(PAGE_SIZE, PAGE_SIZE) == page2
    assert db.file_size() == 2 * PAGE_SIZE
    assert db.content.page_size == PAGE_SIZE


def test_db_write_skipping_page(db):
    with pytest.raises(VfsError) as info:
        db.write(bytes(PAGE_SIZE), 2 * PAGE_SIZE)
    assert info.value.code == ResultCode.IOERR_WRITE


def test_db_write_before_header(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    with pytest.raises(VfsError) as info:
        f.write(bytes(PAGE_SIZE), PAGE_SIZE)
    assert info.value.code == ResultCode.IOERR_WRITE


def test_wal_round_trip(vfs, db):
    wal = vfs.open("test.db-wal", WAL_FLAGS)
    assert db.content.wal is wal.content
    hdr = wal_header()
    wal.write(hdr, 0)
    frame_hdr = bytes(range(WAL_FRAME_HDR_SIZE))
    page = bytes([9]) * PAGE_SIZE
    wal.write(frame_hdr, WAL_HDR_SIZE)
    wal.write(page, WAL_HDR_SIZE + WAL_FRAME_HDR_SIZE)

    assert wal.read(WAL_HDR_SIZE, 0) == hdr
    assert wal.read(WAL_FRAME_HDR_SIZE, WAL_HDR_SIZE) == frame_hdr
    assert wal.read(PAGE_SIZE, WAL_HDR_SIZE + WAL_FRAME_HDR_SIZE) == page
    assert wal.read(WAL_FRAME_HDR_SIZE + PAGE_SIZE, WAL_HDR_SIZE) == frame_hdr + page
    assert wal.read(8, WAL_HDR_SIZE + 16) == frame_hdr[16:24]
    assert wal.read(8, WAL_FRAME_HDR_SIZE) == hdr[24:32]
    assert wal.file_size() == WAL_HDR_SIZE + WAL_FRAME_HDR_SIZE + PAGE_SIZE


def test_wal_header_page_size_mismatch(vfs, db):
    wal = vfs.open("test.db-wal", WAL_FLAGS)
    hdr = bytearray(wal_header())
    hdr[8:12] = (PAGE_SIZE * 2).to_bytes(4, "big")
    with pytest.raises(VfsError) as info:
        wal.write(bytes(hdr), 0)
    assert info.value.code == ResultCode.CORRUPT


def test_wal_unwritten_frame_is_short_read(vfs, db):
    wal = vfs.open("test.db-wal", WAL_FLAGS)
    wal.write(wal_header(), 0)
    wal.write(bytes(WAL_FRAME_HDR_SIZE), WAL_HDR_SIZE)
    offset = WAL_HDR_SIZE + 5 * (WAL_FRAME_HDR_SIZE + PAGE_SIZE)
    with pytest.raises(VfsError) as info:
        wal.read(WAL_FRAME_HDR_SIZE, offset)
    assert info.value.code == ResultCode.IOERR_SHORT_READ


def test_truncate_db(db):
    db.write(bytes(PAGE_SIZE), PAGE_SIZE)
    db.truncate(PAGE_SIZE)
    assert db.file_size() == PAGE_SIZE
    with pytest.raises(VfsError) as info:
        db.truncate(PAGE_SIZE + 1)
    assert info.value.code == ResultCode.IOERR_TRUNCATE


def test_truncate_wal(vfs, db):
    wal = vfs.open("test.db-wal", WAL_FLAGS)
    wal.write(wal_header(), 0)
    wal.write(bytes(WAL_FRAME_HDR_SIZE), WAL_HDR_SIZE)
    with pytest.raises(VfsError) as info:
        wal.truncate(WAL_HDR_SIZE)
    assert info.value.code == ResultCode.PROTOCOL
    wal.truncate(0)
    assert wal.file_size() == 0
    assert wal.content.hdr == bytearray(WAL_HDR_SIZE)


def test_truncate_empty(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    f.truncate(0)
    assert f.file_size() == 0
    with pytest.raises(VfsError) as info:
        f.truncate(PAGE_SIZE)
    assert info.value.code == ResultCode.IOERR_TRUNCATE


def test_other_file_writes_swallowed(vfs):
    f = vfs.open("journal", OpenFlags.READWRITE | OpenFlags.CREATE)
    f.write(b"hello", 0)
    assert f.file_size() == 0
    with pytest.raises(VfsError) as info:
        f.truncate(0)
    assert info.value.code == ResultCode.IOERR_TRUNCATE


def test_pragma_page_size(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    assert f.file_control_pragma("page_size", "1024") is None
    assert f.content.page_size == 1024
    f.file_control_pragma("page_size", "1000")
    assert f.content.page_size == 1024
    with pytest.raises(VfsError) as info:
        f.file_control_pragma("page_size", "4096")
    assert info.value.code == ResultCode.IOERR
    assert info.value.message == "changing page size is not supported"


def test_pragma_journal_mode(vfs):
    f = vfs.open("test.db", DB_FLAGS)
    f.file_control_pragma("journal_mode", "WAL")
    with pytest.raises(VfsError) as info:
        f.file_control_pragma("journal_mode", "delete")
    assert info.value.message == "only WAL mode is supported"


def test_delete(vfs, db):
    with pytest.raises(VfsError) as info:
        vfs.delete("test.db")
    assert info.value.code == ResultCode.IOERR_DELETE
    assert vfs.last_error() == errno.EBUSY
    db.close()
    vfs.delete("test.db")
    assert vfs.access("test.db") is False
    with pytest.raises(VfsError) as info:
        vfs.delete("test.db")
    assert info.value.code == ResultCode.IOERR_DELETE_NOENT


def test_delete_on_close(vfs):
    f = vfs.open("test.db", DB_FLAGS | OpenFlags.DELETEONCLOSE)
    assert vfs.access("test.db") is True
    f.close()
    assert vfs.access("test.db") is False


def test_double_close(db):
    db.close()
    with pytest.raises(MisuseError):
        db.close()


def test_shm_map_and_lock(db):
    assert db.shm_map(0, 32768, False) is None
    region = db.shm_map(0, 32768, True)
    assert len(region) == 32768
    assert db.shm_map(0, 32768, False) is region
    db.shm_lock(0, 1, ShmLockFlags.LOCK | ShmLockFlags.EXCLUSIVE)
    with pytest.raises(VfsError) as info:
        db.shm_lock(0, 1, ShmLockFlags.LOCK | ShmLockFlags.SHARED)
    assert info.value.code == ResultCode.BUSY
    db.shm_lock(0, 1, ShmLockFlags.UNLOCK | ShmLockFlags.EXCLUSIVE)
    db.shm_lock(0, 1, ShmLockFlags.LOCK | ShmLockFlags.SHARED)
    assert db.content.shm.shared[0] == 1


def test_shm_released_on_last_close(vfs, db):
    db.shm_map(0, 1024, True)
    content = db.content
    db.close()
    assert content.shm is None


def test_shm_lock_without_map(db):
    with pytest.raises(MisuseError):
        db.shm_lock(0, 1, ShmLockFlags.LOCK | ShmLockFlags.SHARED)


def test_sync_fails(db):
    with pytest.raises(VfsError) as info:
        db.sync(0)
    assert info.value.code == ResultCode.IOERR_FSYNC


def test_trivial_methods(vfs, db):
    assert db.check_reserved_lock() is True
    assert db.sector_size() == 0
    assert db.device_characteristics() == 0
    assert vfs.full_pathname("test.db") == "test.db"
    assert vfs.sleep(250) == 250
    assert vfs.randomness(4) == bytes(4)


def test_current_time(vfs):
    epoch_ms = 24405875 * 8640000
    now = vfs.current_time_int64()
    assert now > epoch_ms
    assert abs(vfs.current_time() * 86400000 - now) < 60000


def test_temp_file(vfs):
    f = vfs.open(None, OpenFlags.READWRITE | OpenFlags.CREATE | OpenFlags.DELETEONCLOSE)
    f.write(b"hello", 0)
    assert f.read(5, 0) == b"hello"
    assert f.file_size() == 5
    with pytest.raises(VfsError) as info:
        f.read(10, 0)
    assert info.value.data == b"hello" + bytes(5)
    f.close()


def test_registry(vfs):
    register_vfs(vfs)
    assert find_vfs("test") is vfs
    unregister_vfs(vfs)
    assert find_vfs("test") is None