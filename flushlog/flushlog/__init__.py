"""
flushlog - buffer logs in memory, ship them only when something went wrong

This package provides:
- Per-component in-memory log buffers with a JSON logging handle
- A bounded buffer pool with FIFO eviction
- Error-gated flushing to rotating local files, S3 or a Fluentd collector
"""

from flushlog.buffer import (
    BufferKey,
    BufferLogger,
    LogBuffer,
    JsonFormatter,
    create_record_sink,
)
from flushlog.config import SinkKind, SinkConfig, FlushlogConfig, load_config
from flushlog.pool import BufferPool, PoolEntry
from flushlog.rotation import FileBackend, LocalFileBackend, RotationRegistry, RotatingFileWriter
from flushlog.object_store import ObjectStoreClient, detect_content_type
from flushlog.collector import CollectorForwarder
from flushlog.flush import FlushEngine, FlushResult
from flushlog.errors import (
    FlushError,
    RotationError,
    ObjectStoreError,
    CollectorError,
    BufferPanic,
)

__version__ = "0.1.0"

__all__ = [
    # Buffer
    "BufferKey",
    "BufferLogger",
    "LogBuffer",
    "JsonFormatter",
    "create_record_sink",
    # Config
    "SinkKind",
    "SinkConfig",
    "FlushlogConfig",
    "load_config",
    # Pool
    "BufferPool",
    "PoolEntry",
    # Rotation
    "FileBackend",
    "LocalFileBackend",
    "RotationRegistry",
    "RotatingFileWriter",
    # Remote sinks
    "ObjectStoreClient",
    "detect_content_type",
    "CollectorForwarder",
    # Flush
    "FlushEngine",
    "FlushResult",
    # Errors
    "FlushError",
    "RotationError",
    "ObjectStoreError",
    "CollectorError",
    "BufferPanic",
]
