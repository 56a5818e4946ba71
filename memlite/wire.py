"""Primitive encoding: little-endian integers, 64-bit aligned strings and blobs."""

import struct

from .errors import ParseError

WORD_SIZE = 8


def pad64(size):
    """Round size up to the next multiple of eight bytes."""
    return -(-size // WORD_SIZE) * WORD_SIZE


def _unsigned(value, width):
    return int(value).to_bytes(width, "little", signed=False)


def encode_uint8(value):
    return _unsigned(value, 1)


def encode_uint16(value):
    return _unsigned(value, 2)


def encode_uint32(value):
    return _unsigned(value, 4)


def encode_uint64(value):
    return _unsigned(value, 8)


def encode_int64(value):
    return int(value).to_bytes(8, "little", signed=True)


def encode_float(value):
    return struct.pack("<d", value)


def encode_text(value):
    """Encode a string as UTF-8, NUL terminated and zero padded to a word."""
    raw = value.encode("utf-8") + b"\0"
    return raw.ljust(pad64(len(raw)), b"\0")


def encode_blob(value):
    """Encode bytes as a 64-bit length followed by the zero padded data."""
    raw = bytes(value)
    return encode_uint64(len(raw)) + raw.ljust(pad64(len(raw)), b"\0")


class Cursor:
    """Sequential reader over a byte string."""

    def __init__(self, data):
        self._data = bytes(data)
        self._pos = 0

    def remaining(self):
        return len(self._data) - self._pos

    def read_bytes(self, size):
        if size < 0 or size > self.remaining():
            raise ParseError(
                f"need {size} bytes, only {self.remaining()} available"
            )
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def _read_unsigned(self, width):
        return int.from_bytes(self.read_bytes(width), "little", signed=False)

    def read_uint8(self):
        return self._read_unsigned(1)

    def read_uint16(self):
        return self._read_unsigned(2)

    def read_uint32(self):
        return self._read_unsigned(4)

    def read_uint64(self):
        return self._read_unsigned(8)

    def read_int64(self):
        return int.from_bytes(self.read_bytes(8), "little", signed=True)

    def read_float(self):
        return struct.unpack("<d", self.read_bytes(8))[0]

    def read_text(self):
        end = self._data.find(b"\0", self._pos)
        if end == -1:
            raise ParseError("unterminated string")
        length = end - self._pos
        raw = self.read_bytes(pad64(length + 1))
        try:
            return raw[:length].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"invalid UTF-8 string: {exc}") from exc

    def read_blob(self):
        length = self.read_uint64()
        raw = self.read_bytes(pad64(length))
        return raw[:length]