"""
Operation Log

Fixed-capacity, in-memory record of recent cache operations for the
diagnostics endpoints. Nothing here is persisted: the log is reset on
process restart and each process keeps its own.

Architecture:
    RingBuffer (generic circular buffer, head index + modulo)
        ├── OperationLog (CacheOperation records)
        └── DebugLog (formatted log lines)
"""

import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from schoolcache.core.config.constants import CacheOperationType, CacheResult, CacheSource

T = TypeVar("T")


@dataclass(frozen=True)
class CacheOperation:
    """One cache operation as seen by the facade."""

    operation: CacheOperationType
    key: str
    result: CacheResult
    duration_ms: float | None = None
    source: CacheSource | None = None
    error: str | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["operation"] = self.operation.value
        data["result"] = self.result.value
        data["source"] = self.source.value if self.source else None
        return data

    def format(self) -> str:
        """Render as ``[Cache] GET key - HIT [Redis] (3ms)``."""
        source = f" [{self.source.value}]" if self.source else ""
        duration = f" ({self.duration_ms:g}ms)" if self.duration_ms is not None else ""
        error = f" - ERROR: {self.error}" if self.error else ""
        return f"[Cache] {self.operation.value} {self.key} - {self.result.value}{source}{duration}{error}"


class RingBuffer(Generic[T]):
    """
    Circular buffer with O(1) append and oldest-first eviction.

    Slots are preallocated; ``_head`` is the slot the next record goes into
    and ``_size`` counts filled slots. Once full, each append overwrites the
    oldest entry. All access is serialized by a lock so the buffer can be
    shared between the event loop and worker threads.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._slots: list[T | None] = [None] * capacity
        self._head = 0
        self._size = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return self._size

    def append(self, item: T) -> None:
        with self._lock:
            self._slots[self._head] = item
            self._head = (self._head + 1) % self._capacity
            if self._size < self._capacity:
                self._size += 1

    def _ordered(self) -> list[T]:
        # Oldest entry sits at head once the buffer has wrapped
        start = (self._head - self._size) % self._capacity
        return [self._slots[(start + i) % self._capacity] for i in range(self._size)]

    def recent(self, n: int) -> list[T]:
        """Last ``n`` items, oldest first and newest last."""
        if n <= 0:
            return []
        with self._lock:
            items = self._ordered()
        return items[-n:]

    def all(self) -> list[T]:
        with self._lock:
            return self._ordered()

    def clear(self) -> None:
        with self._lock:
            self._slots = [None] * self._capacity
            self._head = 0
            self._size = 0


class OperationLog(RingBuffer[CacheOperation]):
    """Ring buffer of CacheOperation records."""

    def record(self, entry: CacheOperation) -> None:
        self.append(entry)


class DebugLog(RingBuffer[str]):
    """Ring buffer of timestamped debug lines."""

    def write(self, message: str) -> str:
        """Prefix ``message`` with ``[HH:MM:SS.mmmZ]`` and store it."""
        now = datetime.now(timezone.utc)
        line = f"[{now.strftime('%H:%M:%S')}.{now.microsecond // 1000:03d}Z] {message}"
        self.append(line)
        return line
