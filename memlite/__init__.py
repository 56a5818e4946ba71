"""In-memory volatile file system, tuple wire encoding and replication transaction state."""

__version__ = "0.1.0"
__all__ = ["content", "errors", "protocol", "snapshot", "tuple", "tx", "vfs", "wire"]