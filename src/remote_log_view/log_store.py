from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Iterator, Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from .log_record import LogRecord

DEFAULT_CAPACITY = 1000


class LogStore(QObject):
    """
    Thread-safe, bounded, arrival-ordered record buffer.

    The receive thread appends, the UI thread reads and clears. Every
    operation holds the lock for a single deque step, so readers never see a
    half-applied eviction and the append path is never blocked for long.
    Signals fire after the lock is released, on the thread that made the change.
    """

    record_appended = pyqtSignal(object)
    cleared = pyqtSignal()

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        # maxlen makes append + evict-oldest one atomic step
        self._records: Deque[LogRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._total = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total_appended(self) -> int:
        """Records appended since creation or the last clear(), evicted ones included."""
        with self._lock:
            return self._total

    def append(self, record: LogRecord) -> Optional[LogRecord]:
        """Add a record at the end. Returns the record evicted to make room, if any."""
        evicted: Optional[LogRecord] = None
        with self._lock:
            if len(self._records) == self._capacity:
                evicted = self._records[0]
            self._records.append(record)
            self._total += 1
        self.record_appended.emit(record)
        return evicted

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._total = 0
        self.cleared.emit()

    def snapshot(self) -> Tuple[LogRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
