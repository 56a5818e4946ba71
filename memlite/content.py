"""In-memory content of volatile database and WAL files."""

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import List, Optional

DB_HDR_SIZE = 100
WAL_HDR_SIZE = 32
WAL_FRAME_HDR_SIZE = 24
PAGE_SIZE_MIN = 512
PAGE_SIZE_MAX = 65536
SHM_NLOCK = 8

_DB_PAGE_SIZE_OFFSET = 16
_WAL_PAGE_SIZE_OFFSET = 8


class FileType(IntEnum):
    """Kind of content a volatile file holds."""

    DB = 0
    WAL = 1
    OTHER = 2


class ShmLockFlags(IntFlag):
    """Flags accepted by shared-memory locking."""

    UNLOCK = 1
    LOCK = 2
    SHARED = 4
    EXCLUSIVE = 8


_VALID_LOCK_FLAGS = {
    ShmLockFlags.LOCK | ShmLockFlags.SHARED,
    ShmLockFlags.LOCK | ShmLockFlags.EXCLUSIVE,
    ShmLockFlags.UNLOCK | ShmLockFlags.SHARED,
    ShmLockFlags.UNLOCK | ShmLockFlags.EXCLUSIVE,
}


def _is_valid_page_size(size):
    return PAGE_SIZE_MIN <= size <= PAGE_SIZE_MAX and (size - 1) & size == 0


def get_page_size(file_type, data):
    """Return the page size recorded in a database or WAL header.

    Raises ValueError if the header is too short or the size is invalid.
    """
    kind = FileType(file_type)
    data = bytes(data)
    if kind is FileType.DB:
        end = _DB_PAGE_SIZE_OFFSET + 2
        if len(data) < end:
            raise ValueError("database header is too short")
        size = int.from_bytes(data[_DB_PAGE_SIZE_OFFSET:end], "big")
        if size == 1:
            size = PAGE_SIZE_MAX
    elif kind is FileType.WAL:
        end = _WAL_PAGE_SIZE_OFFSET + 4
        if len(data) < end:
            raise ValueError("WAL header is too short")
        size = int.from_bytes(data[_WAL_PAGE_SIZE_OFFSET:end], "big")
    else:
        raise ValueError("only database and WAL files have a page size")
    if not _is_valid_page_size(size):
        raise ValueError(f"invalid page size {size}")
    return size


def wal_calc_pgno(page_size, offset):
    """Return the 1-based frame number containing the given WAL offset."""
    if offset < WAL_HDR_SIZE:
        raise ValueError("offset falls within the WAL header")
    return (offset - WAL_HDR_SIZE) // (page_size + WAL_FRAME_HDR_SIZE) + 1


@dataclass
class Page:
    """A page of a database file, or a frame of a WAL file."""

    buf: bytearray
    hdr: Optional[bytearray] = None


@dataclass
class SharedMemory:
    """Simulated shared memory regions and lock counters of a database."""

    regions: List[bytearray] = field(default_factory=list)
    shared: List[int] = field(default_factory=lambda: [0] * SHM_NLOCK)
    exclusive: List[int] = field(default_factory=lambda: [0] * SHM_NLOCK)

    def map(self, region_index, region_size, extend):
        """Return the region at region_index, optionally creating it.

        Returns None if the region does not exist and extend is false.
        """
        if region_index < len(self.regions):
            return self.regions[region_index]
        if not extend:
            return None
        if region_index != len(self.regions):
            raise ValueError("shared memory must grow one region at a time")
        region = bytearray(region_size)
        self.regions.append(region)
        return region

    def lock(self, offset, n, flags):
        """Acquire or release locks on n slots starting at offset.

        Returns True on success and False if the lock is busy.
        """
        flags = ShmLockFlags(flags)
        if offset < 0 or n < 1 or offset + n > SHM_NLOCK:
            raise ValueError("lock range out of bounds")
        if flags not in _VALID_LOCK_FLAGS:
            raise ValueError(f"invalid lock flags {flags!r}")
        if n != 1 and not flags & ShmLockFlags.EXCLUSIVE:
            raise ValueError("only exclusive locks may span several slots")
        slots = range(offset, offset + n)

        if flags & ShmLockFlags.UNLOCK:
            if flags & ShmLockFlags.SHARED:
                these, others = self.shared, self.exclusive
            else:
                these, others = self.exclusive, self.shared
            for i in slots:
                if others[i]:
                    raise RuntimeError(f"slot {i} holds a lock of the other type")
                # Releasing a lock never acquired is legal and idempotent.
                if these[i] > 0:
                    these[i] -= 1
            return True

        if flags & ShmLockFlags.EXCLUSIVE:
            if any(self.shared[i] or self.exclusive[i] for i in slots):
                return False
            for i in slots:
                self.exclusive[i] = 1
        else:
            if any(self.exclusive[i] for i in slots):
                return False
            for i in slots:
                self.shared[i] += 1
        return True


class Content:
    """Content of a single file in the volatile file system."""

    def __init__(self, filename, file_type):
        self.filename = filename
        self.type = FileType(file_type)
        self.hdr = bytearray(WAL_HDR_SIZE) if self.type is FileType.WAL else None
        self.pages: List[Page] = []
        self.page_size = 0
        self.refcount = 0
        self.shm: Optional[SharedMemory] = None
        self.wal: Optional["Content"] = None

    def is_empty(self):
        return not self.pages

    def page_get(self, pgno):
        """Return page pgno, appending a new one if it is just past the end.

        Raises IndexError if pgno skips beyond the next page.
        """
        if pgno < 1:
            raise ValueError("page numbers start at 1")
        if pgno > len(self.pages) + 1:
            raise IndexError(f"page {pgno} is beyond the end of the file")
        if pgno == len(self.pages) + 1:
            if self.page_size <= 0:
                raise ValueError("page size has not been set")
            hdr = bytearray(WAL_FRAME_HDR_SIZE) if self.type is FileType.WAL else None
            self.pages.append(Page(bytearray(self.page_size), hdr))
        return self.pages[pgno - 1]

    def page_lookup(self, pgno):
        """Return page pgno, or None if it has not been written yet."""
        if pgno < 1:
            raise ValueError("page numbers start at 1")
        if pgno > len(self.pages):
            return None
        return self.pages[pgno - 1]

    def truncate(self, pages_len):
        """Shrink the file to exactly pages_len pages."""
        if self.is_empty():
            raise ValueError("cannot truncate an empty file")
        if pages_len < 0 or pages_len > len(self.pages):
            raise ValueError("truncation must shrink the file")
        if self.type is FileType.WAL:
            if pages_len != 0:
                raise ValueError("a WAL file can only be truncated to zero")
            self.hdr[:] = bytes(WAL_HDR_SIZE)
        del self.pages[pages_len:]