"""Protocol constants, value type codes and request/response identifiers."""

from dataclasses import dataclass
from enum import IntEnum

PROTOCOL_VERSION = 1
PROTOCOL_VERSION_LEGACY = 0x86104DD760433FE5

# A batch of rows is over, but more follow.
RESPONSE_ROWS_PART = 0xEEEEEEEEEEEEEEEE
# The result set is complete.
RESPONSE_ROWS_DONE = 0xFFFFFFFFFFFFFFFF


class ValueType(IntEnum):
    """Type codes of database values."""

    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5
    UNIXTIME = 9
    ISO8601 = 10
    BOOLEAN = 11


class RequestType(IntEnum):
    LEADER = 0
    CLIENT = 1
    HEARTBEAT = 2
    OPEN = 3
    PREPARE = 4
    EXEC = 5
    QUERY = 6
    FINALIZE = 7
    EXEC_SQL = 8
    QUERY_SQL = 9
    INTERRUPT = 10
    CONNECT = 11
    JOIN = 12
    PROMOTE = 13
    REMOVE = 14
    DUMP = 15
    CLUSTER = 16


class ResponseType(IntEnum):
    FAILURE = 0
    SERVER = 1
    SERVER_LEGACY = 1
    WELCOME = 2
    SERVERS = 3
    DB = 4
    STMT = 5
    RESULT = 6
    ROWS = 7
    EMPTY = 8
    FILES = 9


@dataclass(frozen=True)
class NodeInfo:
    """Identity and address of a node in a cluster."""

    id: int
    address: str