"""
BufferPool - bounded, keyed collection of log buffers.

At most one buffer exists per (component, sub_label) key. When the pool is
full, inserting a new key evicts the oldest-inserted entry (strict FIFO,
lookups do not refresh an entry). Eviction does not flush: whatever an
evicted buffer still holds is dropped.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .buffer import BufferKey, BufferLogger, LogBuffer, create_record_sink
from .config import DEFAULT_MAX_BUFFERS, SinkConfig

logger = logging.getLogger(__name__)


@dataclass
class PoolEntry:
    """A buffer together with the handle writing into it."""
    buffer: LogBuffer
    handle: BufferLogger


class BufferPool:
    """
    Keyed pool of LogBuffers with a fixed capacity.

    Usage:
        pool = BufferPool(capacity=50)
        buf, log = pool.get_or_create(("checkout", "-42"), sink_config)
        log.info("charging card")
    """

    def __init__(
        self,
        capacity: int = DEFAULT_MAX_BUFFERS,
        echo_stdout: bool = True,
        level: int = logging.DEBUG,
    ):
        self._check_capacity(capacity)
        self._capacity = capacity
        self._echo_stdout = echo_stdout
        self._level = level
        self._entries: "OrderedDict[BufferKey, PoolEntry]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _check_capacity(capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"Pool capacity must be at least 1, got {capacity}")

    @property
    def capacity(self) -> int:
        return self._capacity

    def set_capacity(self, capacity: int) -> None:
        """
        Change the capacity used by later inserts.

        Entries above the new capacity are kept until the next insert of a
        new key, which evicts the oldest ones down to the new capacity.
        """
        self._check_capacity(capacity)
        with self._lock:
            self._capacity = capacity

    def get_or_create(
        self, key: Tuple[str, str], sink: SinkConfig
    ) -> Tuple[LogBuffer, BufferLogger]:
        """
        Return the buffer and handle for ``key``, creating them if absent.

        Args:
            key: (component, sub_label)
            sink: Destination bound to a newly created buffer; ignored
                when the buffer already exists

        Returns:
            (LogBuffer, BufferLogger)
        """
        key = BufferKey(*key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                logger.warning(
                    "Buffer already exists, returning existing buffer",
                    extra={"component": key.component, "sub_label": key.sub_label},
                )
                return entry.buffer, entry.handle

            sink.validate()
            buffer = LogBuffer(key, sink)
            handle = create_record_sink(buffer, self._echo_stdout, self._level)

            while len(self._entries) >= self._capacity:
                self._evict_oldest()
            self._entries[key] = PoolEntry(buffer, handle)
            return buffer, handle

    def _evict_oldest(self) -> None:
        old_key, old_entry = self._entries.popitem(last=False)
        lost = len(old_entry.buffer)
        logger.debug(
            f"Evicted buffer {old_key.component}/{old_key.sub_label} "
            f"({lost} unflushed bytes dropped)"
        )

    def find_entry(self, key: Tuple[str, str]) -> Optional[PoolEntry]:
        with self._lock:
            return self._entries.get(BufferKey(*key))

    def find(self, key: Tuple[str, str]) -> Optional[LogBuffer]:
        """Look up a buffer; returns None when the key is not pooled."""
        entry = self.find_entry(key)
        return entry.buffer if entry is not None else None

    def find_handle(self, key: Tuple[str, str]) -> Optional[BufferLogger]:
        entry = self.find_entry(key)
        return entry.handle if entry is not None else None

    def keys(self) -> List[BufferKey]:
        """Pooled keys, oldest-inserted first."""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        with self._lock:
            return BufferKey(*key) in self._entries
