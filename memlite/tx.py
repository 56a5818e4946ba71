"""State of a write transaction being replicated."""

from enum import IntEnum

from .errors import MisuseError

_SCHEMA = "main"


class TxState(IntEnum):
    PENDING = 0  # right after creation
    WRITING = 1  # after a non-commit frames command was applied
    WRITTEN = 2  # after a commit frames command was applied
    UNDONE = 3  # after an undo command has been executed
    DOOMED = 4  # the transaction has errored


class Transaction:
    """A write transaction on a replicated connection.

    The connection must expose a ``replication`` attribute, which is set on
    leader connections and None on followers, and the methods
    ``wal_replication_frames`` and ``wal_replication_undo``, which raise on
    failure.
    """

    def __init__(self, id, conn):
        self.id = id
        self.conn = conn
        self.is_zombie = False
        self.state = TxState.PENDING
        self.dry_run = self.is_leader()

    def is_leader(self):
        if self.conn is None:
            raise MisuseError("transaction has no connection")
        return self.conn.replication is not None

    def frames(self, is_begin, page_size, n_frames, page_numbers, pages,
               truncate, is_commit):
        """Apply a batch of WAL frames to the follower connection."""
        if not self.dry_run:
            expected = TxState.PENDING if is_begin else TxState.WRITING
            if self.state is not expected:
                raise MisuseError(
                    f"frames require state {expected.name}, not {self.state.name}"
                )
            self.conn.wal_replication_frames(
                _SCHEMA, is_begin, page_size, n_frames, page_numbers, pages,
                truncate, is_commit,
            )
        self.state = TxState.WRITTEN if is_commit else TxState.WRITING

    def undo(self):
        """Roll back the frames written so far."""
        if not self.dry_run:
            if self.state not in (TxState.PENDING, TxState.WRITING):
                raise MisuseError(f"cannot undo in state {self.state.name}")
            self.conn.wal_replication_undo(_SCHEMA)
        self.state = TxState.UNDONE

    def zombie(self):
        """Mark a leader transaction whose leader lost leadership."""
        if not self.is_leader():
            raise MisuseError("only leader transactions can become zombies")
        if self.is_zombie:
            raise MisuseError("transaction is already a zombie")
        self.is_zombie = True

    def surrogate(self, conn):
        """Turn a zombie leader transaction into a surrogate follower one."""
        if not self.is_leader():
            raise MisuseError("only leader transactions can be surrogated")
        if not self.dry_run:
            raise MisuseError("transaction is not in dry-run mode")
        if not self.is_zombie:
            raise MisuseError("transaction is not a zombie")
        if self.state is not TxState.WRITING:
            raise MisuseError(f"cannot surrogate in state {self.state.name}")
        self.conn = conn
        self.is_zombie = False