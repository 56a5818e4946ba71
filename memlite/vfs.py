"""A volatile file system keeping database and WAL files in memory."""

import errno
import os
import tempfile
import threading
import time
from enum import IntEnum, IntFlag

from .content import (
    DB_HDR_SIZE,
    PAGE_SIZE_MAX,
    PAGE_SIZE_MIN,
    WAL_FRAME_HDR_SIZE,
    WAL_HDR_SIZE,
    Content,
    FileType,
    SharedMemory,
    get_page_size,
    wal_calc_pgno,
)
from .errors import DqliteError, MisuseError

MAX_PATHNAME = 512
MAX_FILES = 64

# Julian day number of the unix epoch, in milliseconds.
_UNIX_EPOCH_MS = 24405875 * 8640000
_MS_PER_DAY = 86400000
_WAL_SUFFIX = "-wal"


class ResultCode(IntEnum):
    """Result codes reported by file system operations."""

    OK = 0
    ERROR = 1
    BUSY = 5
    NOMEM = 7
    IOERR = 10
    CORRUPT = 11
    NOTFOUND = 12
    CANTOPEN = 14
    PROTOCOL = 15
    MISUSE = 21
    IOERR_READ = 10 | (1 << 8)
    IOERR_SHORT_READ = 10 | (2 << 8)
    IOERR_WRITE = 10 | (3 << 8)
    IOERR_FSYNC = 10 | (4 << 8)
    IOERR_TRUNCATE = 10 | (6 << 8)
    IOERR_DELETE = 10 | (10 << 8)
    IOERR_DELETE_NOENT = 10 | (23 << 8)


class VfsError(DqliteError):
    """A file system operation failed with the given result code.

    For short reads, ``data`` holds the zero-filled buffer that was read.
    """

    def __init__(self, code, message="", data=None):
        code = ResultCode(code)
        super().__init__(message or code.name, code)
        self.data = data


class OpenFlags(IntFlag):
    READONLY = 0x00000001
    READWRITE = 0x00000002
    CREATE = 0x00000004
    DELETEONCLOSE = 0x00000008
    EXCLUSIVE = 0x00000010
    MAIN_DB = 0x00000100
    TEMP_DB = 0x00000200
    TRANSIENT_DB = 0x00000400
    MAIN_JOURNAL = 0x00000800
    TEMP_JOURNAL = 0x00001000
    SUBJOURNAL = 0x00002000
    SUPER_JOURNAL = 0x00004000
    WAL = 0x00080000


def _atoi(text):
    """Parse a leading decimal integer, returning 0 if there is none."""
    text = text.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for char in text:
        if not char.isdigit():
            break
        digits += char
    return sign * int(digits) if digits else 0


def _short_read(amount):
    return VfsError(ResultCode.IOERR_SHORT_READ, data=bytes(amount))


class VolatileFile:
    """An open handle on a file of a VolatileVfs, or on a real temp file."""

    def __init__(self, vfs, content, flags, temp=None):
        self.vfs = vfs
        self.content = content
        self.flags = OpenFlags(flags)
        self.temp = temp
        self.lock_level = 0
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        if not self._closed:
            self.close()

    def close(self):
        if self._closed:
            raise MisuseError("file is already closed")
        self._closed = True
        if self.temp is not None:
            self.temp.close()
            return
        with self.vfs._lock:
            content = self.content
            content.refcount -= 1
            if content.refcount == 0 and content.shm is not None:
                content.shm = None
            if self.flags & OpenFlags.DELETEONCLOSE:
                try:
                    self.vfs._delete_content(content.filename)
                except VfsError:
                    pass

    def read(self, amount, offset):
        """Read amount bytes at offset.

        Reads past the written content raise VfsError with code
        IOERR_SHORT_READ, carrying the zero-filled buffer.
        """
        if amount <= 0:
            raise MisuseError("read amount must be positive")
        if self.temp is not None:
            self.temp.seek(offset)
            data = self.temp.read(amount)
            if len(data) < amount:
                raise VfsError(ResultCode.IOERR_SHORT_READ,
                               data=data.ljust(amount, b"\0"))
            return data

        content = self.content
        if content.is_empty():
            raise _short_read(amount)

        if content.type is FileType.DB:
            return self._read_db(amount, offset)
        if content.type is FileType.WAL:
            return self._read_wal(amount, offset)
        raise VfsError(ResultCode.IOERR_READ)

    def _read_db(self, amount, offset):
        content = self.content
        page_size = content.page_size
        if offset < page_size:
            if offset + amount > page_size:
                raise VfsError(ResultCode.IOERR_READ, "read crosses page 1")
            pgno = 1
        else:
            if amount != page_size or offset % page_size != 0:
                raise VfsError(ResultCode.IOERR_READ, "unaligned page read")
            pgno = offset // page_size + 1
        page = content.page_lookup(pgno)
        if page is None:
            raise _short_read(amount)
        if pgno == 1:
            return bytes(page.buf[offset:offset + amount])
        return bytes(page.buf)

    def _read_wal(self, amount, offset):
        content = self.content
        if content.page_size == 0:
            content.page_size = self.vfs._database_page_size(content.filename)
        page_size = content.page_size
        frame_size = page_size + WAL_FRAME_HDR_SIZE

        if offset == 0:
            if amount != WAL_HDR_SIZE:
                raise VfsError(ResultCode.IOERR_READ, "partial WAL header read")
            return bytes(content.hdr)

        if amount == WAL_FRAME_HDR_SIZE:
            if (offset - WAL_HDR_SIZE) % frame_size != 0:
                raise VfsError(ResultCode.IOERR_READ, "unaligned frame header read")
            pgno = wal_calc_pgno(page_size, offset)
        elif amount == 8:
            if offset == WAL_FRAME_HDR_SIZE:
                # Checksum stored in the WAL header.
                return bytes(content.hdr[offset:offset + amount])
            if (offset - 16 - WAL_HDR_SIZE) % frame_size != 0:
                raise VfsError(ResultCode.IOERR_READ, "unaligned checksum read")
            pgno = (offset - 16 - WAL_HDR_SIZE) // frame_size + 1
        elif amount == page_size:
            if (offset - WAL_HDR_SIZE - WAL_FRAME_HDR_SIZE) % frame_size != 0:
                raise VfsError(ResultCode.IOERR_READ, "unaligned page read")
            pgno = wal_calc_pgno(page_size, offset)
        elif amount == frame_size:
            pgno = wal_calc_pgno(page_size, offset)
        else:
            raise VfsError(ResultCode.IOERR_READ, f"unexpected read size {amount}")

        page = content.page_lookup(pgno) if pgno > 0 else None
        if page is None:
            raise _short_read(amount)

        if amount == WAL_FRAME_HDR_SIZE:
            return bytes(page.hdr)
        if amount == 8:
            return bytes(page.hdr[16:24])
        if amount == page_size:
            return bytes(page.buf)
        return bytes(page.hdr) + bytes(page.buf)

    def write(self, data, offset):
        """Write data at offset."""
        data = bytes(data)
        if not data:
            raise MisuseError("write data must not be empty")
        if self.temp is not None:
            self.temp.seek(offset)
            self.temp.write(data)
            return

        content = self.content
        if content.type is FileType.DB:
            self._write_db(data, offset)
        elif content.type is FileType.WAL:
            self._write_wal(data, offset)
        # Writes to any other file are silently swallowed.

    def _write_db(self, data, offset):
        content = self.content
        amount = len(data)
        if offset == 0:
            if amount < DB_HDR_SIZE:
                raise VfsError(ResultCode.IOERR_WRITE, "short database header")
            try:
                page_size = get_page_size(FileType.DB, data)
            except ValueError as exc:
                raise VfsError(ResultCode.CORRUPT, str(exc)) from exc
            if content.page_size > 0:
                if page_size != content.page_size:
                    raise VfsError(ResultCode.IOERR_WRITE, "page size mismatch")
            else:
                content.page_size = page_size
            if amount > page_size:
                raise VfsError(ResultCode.IOERR_WRITE, "write larger than a page")
            pgno = 1
        else:
            page_size = content.page_size
            if page_size == 0:
                raise VfsError(ResultCode.IOERR_WRITE, "page size not set")
            if offset % page_size != 0 or amount != page_size:
                raise VfsError(ResultCode.IOERR_WRITE, "unaligned page write")
            pgno = offset // page_size + 1

        try:
            page = content.page_get(pgno)
        except IndexError as exc:
            raise VfsError(ResultCode.IOERR_WRITE, str(exc)) from exc
        page.buf[:amount] = data

    def _write_wal(self, data, offset):
        content = self.content
        amount = len(data)
        if content.page_size == 0:
            content.page_size = self.vfs._database_page_size(content.filename)
        page_size = content.page_size
        frame_size = page_size + WAL_FRAME_HDR_SIZE

        if offset == 0:
            if amount != WAL_HDR_SIZE:
                raise VfsError(ResultCode.IOERR_WRITE, "partial WAL header write")
            try:
                header_page_size = get_page_size(FileType.WAL, data)
            except ValueError as exc:
                raise VfsError(ResultCode.CORRUPT, str(exc)) from exc
            if header_page_size != page_size:
                raise VfsError(ResultCode.CORRUPT, "WAL page size mismatch")
            content.hdr[:] = data
            return

        if amount == WAL_FRAME_HDR_SIZE:
            if (offset - WAL_HDR_SIZE) % frame_size != 0:
                raise VfsError(ResultCode.IOERR_WRITE, "unaligned frame header write")
            pgno = wal_calc_pgno(page_size, offset)
            try:
                page = content.page_get(pgno)
            except IndexError as exc:
                raise VfsError(ResultCode.IOERR_WRITE, str(exc)) from exc
            page.hdr[:] = data
            return

        if amount != page_size:
            raise VfsError(ResultCode.IOERR_WRITE, f"unexpected write size {amount}")
        if (offset - WAL_HDR_SIZE - WAL_FRAME_HDR_SIZE) % frame_size != 0:
            raise VfsError(ResultCode.IOERR_WRITE, "unaligned page write")
        pgno = wal_calc_pgno(page_size, offset)
        page = content.page_lookup(pgno)
        if page is None:
            raise VfsError(ResultCode.IOERR_WRITE, "frame header not written")
        page.buf[:] = data

    def truncate(self, size):
        if self.temp is not None:
            self.temp.truncate(size)
            return
        content = self.content
        if content.type not in (FileType.DB, FileType.WAL):
            raise VfsError(ResultCode.IOERR_TRUNCATE)
        if content.is_empty():
            if size > 0:
                raise VfsError(ResultCode.IOERR_TRUNCATE)
            return
        if content.type is FileType.DB:
            if size % content.page_size != 0:
                raise VfsError(ResultCode.IOERR_TRUNCATE)
            pgno = size // content.page_size
        else:
            if size != 0:
                raise VfsError(ResultCode.PROTOCOL, "WAL can only be truncated to zero")
            pgno = 0
        try:
            content.truncate(pgno)
        except ValueError as exc:
            raise VfsError(ResultCode.IOERR_TRUNCATE, str(exc)) from exc

    def sync(self, flags):
        raise VfsError(ResultCode.IOERR_FSYNC)

    def file_size(self):
        if self.temp is not None:
            return os.fstat(self.temp.fileno()).st_size
        content = self.content
        if content.is_empty():
            return 0
        if content.type is FileType.DB:
            return len(content.pages) * content.page_size
        return WAL_HDR_SIZE + len(content.pages) * (
            WAL_FRAME_HDR_SIZE + content.page_size)

    def lock(self, level):
        """Record the requested lock level; it always succeeds, since no
        other process sees the file."""
        if level > self.lock_level:
            self.lock_level = level

    def unlock(self, level):
        """Lower the recorded lock level; it always succeeds."""
        if level < self.lock_level:
            self.lock_level = level

    def check_reserved_lock(self):
        return True

    def file_control_pragma(self, name, value):
        """Inspect a PRAGMA before the database engine handles it itself.

        Raises VfsError with code IOERR if the pragma is not supported.
        """
        if name == "page_size" and value:
            page_size = _atoi(value)
            if (PAGE_SIZE_MIN <= page_size <= PAGE_SIZE_MAX
                    and (page_size - 1) & page_size == 0):
                content = self.content
                if content.page_size and page_size != content.page_size:
                    raise VfsError(ResultCode.IOERR,
                                   "changing page size is not supported")
                content.page_size = page_size
        elif name == "journal_mode" and value:
            if value.lower() != "wal":
                raise VfsError(ResultCode.IOERR, "only WAL mode is supported")

    def sector_size(self):
        return 0

    def device_characteristics(self):
        return 0

    def shm_map(self, region_index, region_size, extend):
        """Return a shared memory region, or None if absent and not extended."""
        content = self.content
        if content.shm is None:
            content.shm = SharedMemory()
        return content.shm.map(region_index, region_size, extend)

    def shm_lock(self, offset, n, flags):
        """Acquire or release shared memory locks; raise BUSY on conflict."""
        if self.content.shm is None:
            raise MisuseError("shared memory is not mapped")
        if not self.content.shm.lock(offset, n, flags):
            raise VfsError(ResultCode.BUSY)

    def shm_barrier(self):
        """Act as a memory barrier by passing through the file system lock."""
        self.vfs._lock.acquire()
        self.vfs._lock.release()

    def shm_unmap(self, delete):
        """Report whether a mapping is present; regions are released when the
        last handle closes."""
        return self.content is not None and self.content.shm is not None


class VolatileVfs:
    """An in-memory file system holding at most max_files files."""

    def __init__(self, name, max_files=MAX_FILES):
        if max_files <= 0:
            raise ValueError("max_files must be positive")
        self.name = name
        self.max_pathname = MAX_PATHNAME
        self._contents = [None] * max_files
        self._lock = threading.RLock()
        self._error = 0

    def _lookup(self, filename):
        """Return (index, content) for a file, or (free slot or -1, None)."""
        free_slot = -1
        for index, content in enumerate(self._contents):
            if content is not None and content.filename == filename:
                return index, content
            if content is None and free_slot == -1:
                free_slot = index
        return free_slot, None

    def _database_content(self, wal_filename):
        main_filename = wal_filename[:len(wal_filename) - len(_WAL_SUFFIX)]
        _, content = self._lookup(main_filename)
        if content is None:
            raise VfsError(ResultCode.CORRUPT, "no database for WAL file")
        return content

    def _database_page_size(self, wal_filename):
        with self._lock:
            database = self._database_content(wal_filename)
        if database.page_size <= 0:
            raise VfsError(ResultCode.CORRUPT, "database page size not set")
        return database.page_size

    def _delete_content(self, filename):
        index, content = self._lookup(filename)
        if content is None:
            self._error = errno.ENOENT
            raise VfsError(ResultCode.IOERR_DELETE_NOENT)
        if content.refcount > 0:
            self._error = errno.EBUSY
            raise VfsError(ResultCode.IOERR_DELETE)
        self._contents[index] = None

    def open(self, filename, flags):
        """Open a file and return a VolatileFile handle.

        A filename of None opens an anonymous temporary file on disk.
        """
        flags = OpenFlags(flags)
        if filename is None:
            if not flags & OpenFlags.DELETEONCLOSE:
                raise MisuseError("anonymous files must be delete-on-close")
            try:
                temp = tempfile.TemporaryFile()
            except OSError as exc:
                self._error = exc.errno or errno.ENOENT
                raise VfsError(ResultCode.CANTOPEN, str(exc)) from exc
            return VolatileFile(self, None, flags, temp)

        exclusive = bool(flags & OpenFlags.EXCLUSIVE)
        create = bool(flags & OpenFlags.CREATE)

        with self._lock:
            free_slot, content = self._lookup(filename)
            if content is not None and exclusive and create:
                self._error = errno.EEXIST
                raise VfsError(ResultCode.CANTOPEN, "file exists")

            if content is None:
                if not create:
                    self._error = errno.ENOENT
                    raise VfsError(ResultCode.CANTOPEN, "no such file")
                if free_slot == -1:
                    self._error = errno.ENFILE
                    raise VfsError(ResultCode.CANTOPEN, "too many files")
                if flags & OpenFlags.MAIN_DB:
                    file_type = FileType.DB
                elif flags & OpenFlags.WAL:
                    file_type = FileType.WAL
                else:
                    file_type = FileType.OTHER
                content = Content(filename, file_type)
                if file_type is FileType.WAL:
                    try:
                        database = self._database_content(filename)
                    except VfsError:
                        self._error = errno.ENOMEM
                        raise
                    database.wal = content
                self._contents[free_slot] = content

            content.refcount += 1
            return VolatileFile(self, content, flags)

    def delete(self, filename):
        with self._lock:
            self._delete_content(filename)

    def access(self, filename):
        """Return whether the file exists."""
        with self._lock:
            _, content = self._lookup(filename)
            if content is None:
                self._error = errno.ENOENT
                return False
            return True

    def full_pathname(self, filename):
        """Return the path unchanged, cut to the maximum pathname length."""
        return str(filename)[:self.max_pathname]

    def randomness(self, n):
        return bytes(n)

    def sleep(self, microseconds):
        """Report the requested duration as slept without sleeping."""
        microseconds = int(microseconds)
        if microseconds < 0:
            raise ValueError("microseconds must not be negative")
        return microseconds

    def current_time_int64(self):
        """Current time as a Julian day number, in milliseconds."""
        return _UNIX_EPOCH_MS + time.time_ns() // 1_000_000

    def current_time(self):
        """Current time as a fractional Julian day number."""
        return self.current_time_int64() / _MS_PER_DAY

    def last_error(self):
        with self._lock:
            return self._error


_registry = {}
_registry_lock = threading.Lock()


def register_vfs(vfs):
    """Make vfs findable under its name, replacing any previous one."""
    with _registry_lock:
        _registry[vfs.name] = vfs


def unregister_vfs(vfs):
    with _registry_lock:
        if _registry.get(vfs.name) is vfs:
            del _registry[vfs.name]


def find_vfs(name):
    """Return the file system registered under name, or None."""
    with _registry_lock:
        return _registry.get(name)