"""Take and restore snapshots of files held by a registered volatile file system."""

from .content import WAL_FRAME_HDR_SIZE, WAL_HDR_SIZE, FileType, get_page_size
from .errors import MisuseError
from .vfs import OpenFlags, ResultCode, VfsError, find_vfs

_WAL_MARKER = "-wal"


def guess_file_type(filename):
    """Guess from its name whether a file is a database or a WAL file."""
    if _WAL_MARKER in filename:
        return FileType.WAL
    return FileType.DB


def _lookup(vfs_name):
    vfs = find_vfs(vfs_name)
    if vfs is None:
        raise VfsError(ResultCode.ERROR, f"no file system named {vfs_name!r}")
    return vfs


def _type_flag(file_type):
    return OpenFlags.MAIN_DB if file_type is FileType.DB else OpenFlags.WAL


def _page_size(file_type, data):
    try:
        return get_page_size(file_type, data)
    except ValueError as exc:
        raise VfsError(ResultCode.CORRUPT, str(exc)) from exc


def read_file(vfs_name, filename):
    """Return the whole content of a file of the named file system.

    An empty file yields empty bytes. Failures raise VfsError.
    """
    vfs = _lookup(vfs_name)
    file_type = guess_file_type(filename)
    flags = OpenFlags.READWRITE | _type_flag(file_type)

    with vfs.open(filename, flags) as file:
        size = file.file_size()
        if size == 0:
            return b""

        # The header read is large enough for both database and WAL files.
        header = file.read(WAL_HDR_SIZE, 0)
        page_size = _page_size(file_type, header)

        chunks = []
        offset = 0
        if file_type is FileType.WAL:
            chunks.append(header)
            offset += WAL_HDR_SIZE

        while offset < size:
            if file_type is FileType.WAL:
                chunks.append(file.read(WAL_FRAME_HDR_SIZE, offset))
                offset += WAL_FRAME_HDR_SIZE
            chunks.append(file.read(page_size, offset))
            offset += page_size

    return b"".join(chunks)


def write_file(vfs_name, filename, data):
    """Replace the content of a file of the named file system with data.

    The file is created if it does not exist. Failures raise VfsError.
    """
    data = bytes(data)
    if not data:
        raise MisuseError("snapshot data must not be empty")

    vfs = _lookup(vfs_name)
    file_type = guess_file_type(filename)
    flags = OpenFlags.READWRITE | OpenFlags.CREATE | _type_flag(file_type)

    with vfs.open(filename, flags) as file:
        file.truncate(0)
        page_size = _page_size(file_type, data)

        offset = 0
        if file_type is FileType.WAL:
            file.write(data[:WAL_HDR_SIZE], 0)
            offset += WAL_HDR_SIZE

        while offset < len(data):
            if file_type is FileType.WAL:
                file.write(data[offset:offset + WAL_FRAME_HDR_SIZE], offset)
                offset += WAL_FRAME_HDR_SIZE
            file.write(data[offset:offset + page_size], offset)
            offset += page_size