"""Exceptions raised by the package, each carrying its numeric error code."""

ERROR = 1
MISUSE = 2
NOMEM = 3
PROTO = 1001


class DqliteError(Exception):
    """Generic error."""

    code = ERROR

    def __init__(self, message="", code=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class MisuseError(DqliteError):
    """The library was used incorrectly."""

    code = MISUSE


class NoMemError(DqliteError):
    """An allocation failed."""

    code = NOMEM


class ProtocolError(DqliteError):
    """A message violated the wire protocol."""

    code = PROTO


class ParseError(ProtocolError):
    """Encoded data is malformed or truncated."""