"""Encode and decode tuples of database values.

A tuple has a header of type codes followed by the encoded values. In
parameter format the header starts with a one-byte value count and uses one
byte per type code; in row format the count is known to the reader and each
type code takes four bits. Headers are zero padded to a 64-bit boundary.
"""

from dataclasses import dataclass
from enum import IntEnum

from .errors import ParseError
from .protocol import ValueType
from .wire import (
    Cursor,
    encode_blob,
    encode_float,
    encode_int64,
    encode_text,
    encode_uint8,
    encode_uint64,
    pad64,
)

_MAX_PARAMS = 255


class TupleFormat(IntEnum):
    ROW = 1
    PARAMS = 2


@dataclass(frozen=True)
class Value:
    """A single typed database value."""

    type: ValueType
    value: object = None


def header_size(n, format):
    """Size in bytes of the type-code header of a tuple of n values.

    In parameter format the leading count byte is not included.
    """
    if TupleFormat(format) is TupleFormat.ROW:
        return pad64((n + 1) // 2)
    return pad64(1 + n) - 1


class TupleDecoder:
    """Decode the values of a single tuple from a cursor.

    If n is zero the tuple is in parameter format and its size is read from
    the first byte; otherwise it is a row of n values.
    """

    def __init__(self, cursor, n):
        self._cursor = cursor
        if n == 0:
            self.format = TupleFormat.PARAMS
            self._n = cursor.read_uint8()
        else:
            self.format = TupleFormat.ROW
            self._n = n
        self._header = cursor.read_bytes(header_size(self._n, self.format))
        self._i = 0

    def __len__(self):
        return self._n

    def __iter__(self):
        while self._i < self._n:
            yield self.next()

    def _type_code(self, i):
        if self.format is TupleFormat.ROW:
            byte = self._header[i // 2]
            return byte & 0x0F if i % 2 == 0 else byte >> 4
        return self._header[i]

    def next(self):
        """Decode and return the next value."""
        if self._i >= self._n:
            raise IndexError("all values of the tuple have been decoded")
        code = self._type_code(self._i)
        cursor = self._cursor
        if code == ValueType.INTEGER:
            value = Value(ValueType.INTEGER, cursor.read_int64())
        elif code == ValueType.FLOAT:
            value = Value(ValueType.FLOAT, cursor.read_float())
        elif code == ValueType.BLOB:
            value = Value(ValueType.BLOB, cursor.read_blob())
        elif code == ValueType.NULL:
            cursor.read_uint64()
            value = Value(ValueType.NULL, None)
        elif code == ValueType.TEXT:
            value = Value(ValueType.TEXT, cursor.read_text())
        elif code == ValueType.ISO8601:
            value = Value(ValueType.ISO8601, cursor.read_text())
        elif code == ValueType.BOOLEAN:
            value = Value(ValueType.BOOLEAN, bool(cursor.read_uint64()))
        else:
            raise ParseError(f"unsupported value type code {code}")
        self._i += 1
        return value


def _encode_value(value):
    kind = ValueType(value.type)
    if kind is ValueType.INTEGER or kind is ValueType.UNIXTIME:
        return encode_int64(value.value)
    if kind is ValueType.FLOAT:
        return encode_float(value.value)
    if kind is ValueType.BLOB:
        return encode_blob(value.value)
    if kind is ValueType.NULL:
        return encode_uint64(0)
    if kind is ValueType.TEXT or kind is ValueType.ISO8601:
        return encode_text(value.value)
    return encode_uint64(1 if value.value else 0)


class TupleEncoder:
    """Build the encoding of a tuple of exactly n values."""

    def __init__(self, n, format):
        self.format = TupleFormat(format)
        if n <= 0:
            raise ValueError("a tuple must hold at least one value")
        if self.format is TupleFormat.PARAMS and n > _MAX_PARAMS:
            raise ValueError(f"at most {_MAX_PARAMS} parameters are supported")
        self._n = n
        self._header = bytearray(header_size(n, self.format))
        self._body = bytearray()
        self._i = 0

    def add(self, value):
        """Append the next value."""
        if self._i >= self._n:
            raise IndexError("the tuple is already complete")
        kind = ValueType(value.type)
        encoded = _encode_value(value)
        if self.format is TupleFormat.ROW:
            slot = self._i // 2
            if self._i % 2 == 0:
                self._header[slot] = kind
            else:
                self._header[slot] |= kind << 4
        else:
            self._header[self._i] = kind
        self._body += encoded
        self._i += 1

    def to_bytes(self):
        if self._i < self._n:
            raise ValueError(f"only {self._i} of {self._n} values were added")
        prefix = encode_uint8(self._n) if self.format is TupleFormat.PARAMS else b""
        return prefix + bytes(self._header) + bytes(self._body)


def encode_tuple(values, format):
    """Encode a sequence of values as a tuple in the given format."""
    values = list(values)
    encoder = TupleEncoder(len(values), format)
    for value in values:
        encoder.add(value)
    return encoder.to_bytes()


def decode_tuple(data, n):
    """Decode a tuple from data; n is the row size, or 0 for parameters."""
    return list(TupleDecoder(Cursor(data), n))