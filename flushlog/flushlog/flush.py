"""
FlushEngine - ships dirty buffers to their sink.

A buffer is only shipped once an error was reported against it:

    clean --report_error--> dirty --flush--> clean

Dispatch by the buffer's SinkKind:
    LOCAL_FILE      → RotatingFileWriter  ({base_path}/{component}{sub_label}.log)
    OBJECT_STORE    → ObjectStoreClient   (same name, used as object key)
    PUSH_COLLECTOR  → CollectorForwarder  (one record per JSON line,
                                           tag "{component}.{sub_label}")

Failures surface as FlushError subclasses and leave the buffer dirty so the
caller can retry. For the push collector, malformed lines are logged and
skipped, while a transport failure aborts the flush; records delivered
before the failure are removed from the buffer.
"""

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .buffer import BufferKey, BufferLogger, LogBuffer
from .collector import CollectorForwarder
from .config import DEFAULT_MAX_FILES, FlushlogConfig, SinkConfig, SinkKind
from .errors import BufferPanic, CollectorError, FlushError
from .object_store import ObjectStoreClient
from .rotation import FileBackend, RotatingFileWriter, RotationRegistry

logger = logging.getLogger(__name__)

ObjectStoreFactory = Callable[[SinkConfig], ObjectStoreClient]
ForwarderFactory = Callable[[SinkConfig], CollectorForwarder]


@dataclass
class FlushResult:
    """Outcome of a flush that shipped a dirty buffer."""
    key: BufferKey
    sink: SinkKind
    bytes_sent: int = 0
    records_sent: int = 0
    records_skipped: int = 0
    elapsed_s: float = 0.0


def _default_object_store(sink: SinkConfig) -> ObjectStoreClient:
    return ObjectStoreClient(
        bucket=sink.bucket,
        region=sink.region,
        prefix=sink.prefix,
        timeout_s=sink.timeout_s,
    )


def _default_forwarder(sink: SinkConfig) -> CollectorForwarder:
    return CollectorForwarder(sink.collector_host, sink.collector_port, sink.timeout_s)


class FlushEngine:
    """
    Decides whether a buffer is flushed and ships it.

    The engine owns the rotation registry for local files and caches one
    object store client per bucket configuration.
    """

    def __init__(
        self,
        max_files: int = DEFAULT_MAX_FILES,
        backend: Optional[FileBackend] = None,
        object_store_factory: Optional[ObjectStoreFactory] = None,
        forwarder_factory: Optional[ForwarderFactory] = None,
    ):
        self.registry = RotationRegistry(max_files)
        self.file_writer = RotatingFileWriter(self.registry, backend)
        self._object_store_factory = object_store_factory or _default_object_store
        self._forwarder_factory = forwarder_factory or _default_forwarder
        self._stores: Dict[Tuple[str, str, str, float], ObjectStoreClient] = {}
        self._stores_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: FlushlogConfig, **kwargs: Any) -> "FlushEngine":
        return cls(max_files=config.max_files, **kwargs)

    def set_max_files(self, max_files: int) -> None:
        self.file_writer.set_max_files(max_files)

    # -- Error reporting -----------------------------------------------------

    def report_error(
        self,
        handle: BufferLogger,
        buffer: LogBuffer,
        message: str,
        err: Optional[BaseException] = None,
        **metadata: Any,
    ) -> None:
        """
        Record an error-level entry in ``buffer`` and mark it dirty.

        Does not flush.
        """
        fields = dict(metadata)
        if err is not None:
            fields["error"] = str(err)
        handle.with_fields(**fields).error(message)
        buffer.mark_dirty()

    def fatal_flush(
        self,
        handle: BufferLogger,
        buffer: LogBuffer,
        message: str,
        err: Optional[BaseException] = None,
        **metadata: Any,
    ) -> None:
        """Report the error, flush, then exit the process with status 1."""
        self.report_error(handle, buffer, message, err, **metadata)
        self._flush_before_exit(buffer)
        logger.critical(f"{message}: {err}" if err is not None else message)
        sys.exit(1)

    def panic_flush(
        self,
        handle: BufferLogger,
        buffer: LogBuffer,
        message: str,
        err: Optional[BaseException] = None,
        **metadata: Any,
    ) -> None:
        """Report the error, flush, then raise BufferPanic."""
        self.report_error(handle, buffer, message, err, **metadata)
        self._flush_before_exit(buffer)
        raise BufferPanic(message, err) from err

    def _flush_before_exit(self, buffer: LogBuffer) -> None:
        # Termination goes ahead whatever happens here.
        try:
            self.flush(buffer)
        except Exception:
            logger.exception(
                f"Flush before termination failed for {buffer.key.component}/{buffer.key.sub_label}"
            )

    # -- Flushing ------------------------------------------------------------

    def flush(self, buffer: LogBuffer) -> Optional[FlushResult]:
        """
        Ship ``buffer`` if it is dirty.

        Flushes of the same buffer are serialized; a second call blocks
        until the first one finished.

        Returns:
            FlushResult, or None when the buffer was clean

        Raises:
            FlushError: If the sink transfer failed
        """
        fields = {"component": buffer.key.component, "sub_label": buffer.key.sub_label}

        with buffer.flush_lock:
            if not buffer.dirty:
                logger.info("Buffer cleared without flushing", extra=fields)
                return None

            result = FlushResult(key=buffer.key, sink=buffer.sink.kind)
            generation = buffer.generation
            start = time.monotonic()
            try:
                self._dispatch(buffer, result)
                # An error reported mid-transfer keeps the buffer dirty.
                buffer.clear_dirty(generation)
                logger.info(
                    f"Copied {result.bytes_sent} bytes ({result.records_sent} records)",
                    extra=fields,
                )
                return result
            except FlushError as e:
                if e.key is None:
                    e.key = tuple(buffer.key)
                raise
            finally:
                result.elapsed_s = time.monotonic() - start
                logger.info(
                    f"Flushing took {result.elapsed_s:.6f}s",
                    extra=dict(fields, elapsed_s=result.elapsed_s, sink=result.sink.value),
                )

    def _dispatch(self, buffer: LogBuffer, result: FlushResult) -> None:
        kind = buffer.sink.kind
        if kind is SinkKind.LOCAL_FILE:
            self._flush_to_file(buffer, result)
        elif kind is SinkKind.OBJECT_STORE:
            self._flush_to_object_store(buffer, result)
        elif kind is SinkKind.PUSH_COLLECTOR:
            self._flush_to_collector(buffer, result)
        else:
            raise FlushError(f"Unsupported sink kind: {kind}", key=tuple(buffer.key))

    def _flush_to_file(self, buffer: LogBuffer, result: FlushResult) -> None:
        data = buffer.read()
        path = Path(buffer.sink.base_path) / buffer.log_name
        self.file_writer.write(path, data)
        buffer.discard(len(data))
        result.bytes_sent = len(data)
        result.records_sent = _count_lines(data)

    def _flush_to_object_store(self, buffer: LogBuffer, result: FlushResult) -> None:
        data = buffer.read()
        self.object_store_for(buffer.sink).upload(buffer.log_name, data)
        buffer.discard(len(data))
        result.bytes_sent = len(data)
        result.records_sent = _count_lines(data)

    def _flush_to_collector(self, buffer: LogBuffer, result: FlushResult) -> None:
        data = buffer.read()
        tag = buffer.tag
        offset = 0

        with self._forwarder_factory(buffer.sink) as forwarder:
            for raw_line in data.splitlines(keepends=True):
                line = raw_line.strip()
                if not line:
                    offset += len(raw_line)
                    continue

                try:
                    record = json.loads(line)
                    if not isinstance(record, dict):
                        raise ValueError(f"expected a JSON object, got {type(record).__name__}")
                except ValueError as e:
                    logger.error(f"Skipping malformed record for {tag}: {e}")
                    result.records_skipped += 1
                    offset += len(raw_line)
                    continue

                try:
                    forwarder.post(tag, record)
                except CollectorError as e:
                    # Keep the undelivered tail for a retry.
                    buffer.discard(offset)
                    e.sent = result.records_sent
                    raise

                result.records_sent += 1
                result.bytes_sent += len(raw_line)
                offset += len(raw_line)

        buffer.discard(len(data))

    def object_store_for(self, sink: SinkConfig) -> ObjectStoreClient:
        cache_key = (sink.bucket, sink.region, sink.prefix, sink.timeout_s)
        with self._stores_lock:
            store = self._stores.get(cache_key)
            if store is None:
                store = self._object_store_factory(sink)
                self._stores[cache_key] = store
            return store


def _count_lines(data: bytes) -> int:
    return sum(1 for line in data.splitlines() if line.strip())
