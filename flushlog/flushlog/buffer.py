"""
LogBuffer and the record sink that feeds it.

Every component instance owns one LogBuffer. Log records written through
the buffer's handle are formatted as one JSON object per line, echoed to
stdout and mirrored into the buffer:

    handle.info(...) → JsonFormatter → stdout
                                     → BufferHandler → LogBuffer

The buffer content is only shipped somewhere when an error has been
reported against it (see flushlog.flush).
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, NamedTuple, Optional, Tuple

from .config import SinkConfig


class BufferKey(NamedTuple):
    """Ownership key of a buffer: (component name, sub-label)."""
    component: str
    sub_label: str


class LogBuffer:
    """
    Append-only byte accumulator with a dirty flag.

    Attributes:
        key: Owning (component, sub_label) pair
        sink: Destination the buffer is flushed to
        dirty: True once an error was reported since the last flush
        flush_lock: Serializes flushes of this buffer
    """

    def __init__(self, key: BufferKey, sink: SinkConfig):
        self._key = key
        self._sink = sink
        self._data = bytearray()
        self._lock = threading.Lock()
        self.dirty = False
        self._generation = 0
        self.flush_lock = threading.Lock()

    @property
    def key(self) -> BufferKey:
        return self._key

    @property
    def sink(self) -> SinkConfig:
        return self._sink

    @property
    def log_name(self) -> str:
        """File name / object key of the shipped log."""
        return f"{self._key.component}{self._key.sub_label}.log"

    @property
    def tag(self) -> str:
        """Collector tag for records of this buffer."""
        return f"{self._key.component}.{self._key.sub_label}"

    @property
    def generation(self) -> int:
        """Number of errors reported against this buffer so far."""
        return self._generation

    def mark_dirty(self) -> None:
        with self._lock:
            self._generation += 1
            self.dirty = True

    def clear_dirty(self, generation: int) -> bool:
        """
        Clear the dirty flag unless an error was reported after ``generation``.

        Returns:
            True if the flag was cleared
        """
        with self._lock:
            if self._generation != generation:
                return False
            self.dirty = False
            return True

    def append(self, data: bytes) -> int:
        with self._lock:
            self._data.extend(data)
        return len(data)

    def read(self) -> bytes:
        """Return a snapshot of the current content."""
        with self._lock:
            return bytes(self._data)

    content = property(read)

    def reset(self) -> None:
        with self._lock:
            self._data.clear()

    def discard(self, n: int) -> None:
        """Drop the first ``n`` bytes, keeping anything appended after them."""
        with self._lock:
            del self._data[:n]

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return (
            f"LogBuffer(key={self._key!r}, sink={self._sink.kind.value}, "
            f"size={len(self)}, dirty={self.dirty})"
        )


# ---------------------------------------------------------------------------
# Record sink
# ---------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """
    Formats a record as a single-line JSON object.

    Structured fields whose name clashes with a built-in key (``time``,
    ``level``, ``msg``, ``exception``) are written as ``fields.<name>``.
    """

    reserved = ("time", "level", "msg", "exception")

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            for name, value in fields.items():
                if name in self.reserved:
                    name = f"fields.{name}"
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class BufferHandler(logging.Handler):
    """Appends formatted records, newline-terminated, to a LogBuffer."""

    def __init__(self, buffer: LogBuffer, level: int = logging.NOTSET):
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) + "\n"
            self.buffer.append(line.encode("utf-8"))
        except Exception:
            self.handleError(record)


class BufferLogger(logging.LoggerAdapter):
    """
    Logging handle bound to one buffer.

    Carries structured fields that are added to every record, similar to
    a structured log entry:

        handle.with_fields(request_id="abc").error("lookup failed")
    """

    def __init__(self, logger: logging.Logger, fields: Optional[Dict[str, Any]] = None):
        super().__init__(logger, {})
        self.fields: Dict[str, Any] = dict(fields or {})

    def with_fields(self, **fields: Any) -> "BufferLogger":
        merged = dict(self.fields)
        merged.update(fields)
        return BufferLogger(self.logger, merged)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        record_fields = dict(self.fields)
        record_fields.update(extra.pop("fields", {}))
        extra["fields"] = record_fields
        kwargs["extra"] = extra
        return msg, kwargs


def create_record_sink(
    buffer: LogBuffer,
    echo_stdout: bool = True,
    level: int = logging.DEBUG,
) -> BufferLogger:
    """
    Create the logging handle that writes into ``buffer``.

    The logger is not registered with the logging module, so a buffer
    re-created after eviction never inherits handlers of its predecessor.

    Args:
        buffer: Buffer receiving a copy of every record
        echo_stdout: Also write records to stdout
        level: Minimum level recorded

    Returns:
        BufferLogger handle
    """
    component, sub_label = buffer.key
    logger = logging.Logger(f"flushlog.buffer.{component}.{sub_label}", level)
    logger.propagate = False

    formatter = JsonFormatter()
    buffer_handler = BufferHandler(buffer)
    buffer_handler.setFormatter(formatter)
    logger.addHandler(buffer_handler)

    if echo_stdout:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(formatter)
        logger.addHandler(stdout_handler)

    return BufferLogger(logger, {"component": component, "sub_label": sub_label})
