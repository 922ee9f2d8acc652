"""
Exceptions raised while flushing buffers.
"""

from typing import Optional, Tuple


class FlushError(Exception):
    """Raised when a dirty buffer could not be shipped to its sink.

    Attributes:
        key: (component, sub_label) of the buffer, when known.
        sink: Sink kind value the flush was dispatched to, when known.
    """

    def __init__(
        self,
        message: str,
        key: Optional[Tuple[str, str]] = None,
        sink: Optional[str] = None,
    ):
        self.key = key
        self.sink = sink
        if key is not None:
            message = f"{message} (buffer={key[0]}/{key[1]})"
        super().__init__(message)


class RotationError(FlushError):
    """Raised when a local log file could not be created, renamed or written."""

    def __init__(self, path: str, operation: str, reason: str):
        self.path = path
        self.operation = operation
        super().__init__(f"Failed to {operation} {path}: {reason}", sink="local_file")


class ObjectStoreError(FlushError):
    """Raised when an object store upload or download fails."""

    def __init__(self, bucket: str, key: str, reason: str):
        self.bucket = bucket
        self.object_key = key
        super().__init__(f"Object store request for s3://{bucket}/{key} failed: {reason}", sink="object_store")


class CollectorError(FlushError):
    """Raised when a record cannot be forwarded to the push collector.

    Attributes:
        sent: Number of records forwarded before the failure.
    """

    def __init__(self, address: str, reason: str, sent: int = 0):
        self.address = address
        self.sent = sent
        super().__init__(f"Forwarding to collector {address} failed: {reason}", sink="push_collector")


class BufferPanic(Exception):
    """Raised by panic_flush after the buffer has been flushed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
