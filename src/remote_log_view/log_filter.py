from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from PyQt5.QtCore import QObject, Qt, pyqtSignal

from .errors import FilterCompileError
from .log_record import LogRecord
from .log_store import LogStore
from .udp_log_utils import PatternOrStr, compile_pattern, match_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogFilter:
    """
    Message predicate: empty pattern matches everything, otherwise
    case-sensitive substring or regex search against the message.
    """
    pattern: str = ""
    use_regex: bool = False
    compiled: Optional[PatternOrStr] = None

    @classmethod
    def create(cls, pattern: str, use_regex: bool) -> "LogFilter":
        return cls(pattern=pattern, use_regex=use_regex, compiled=compile_pattern(pattern, use_regex))

    def matches(self, record: LogRecord) -> bool:
        return match_message(record.message, self.compiled)

    def apply(self, records: Iterable[LogRecord]) -> Tuple[LogRecord, ...]:
        return tuple(r for r in records if self.matches(r))


class FilteredLogView(QObject):
    """
    Live filtered projection of a LogStore.

    Any store change (append, clear) and any filter change re-runs the filter
    over a fresh snapshot of the store. The store is bounded, so a full pass
    is cheap enough to do every time.

    A pattern that fails to compile leaves the previous filter and view in
    place; the error is emitted and raised to the caller.
    """

    view_changed = pyqtSignal()
    filter_error = pyqtSignal(str)

    def __init__(self, store: LogStore, *, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._store = store
        self._filter = LogFilter()
        self._records: Tuple[LogRecord, ...] = ()
        self._lock = threading.Lock()

        # Direct: the view stays consistent even without a running Qt event loop.
        store.record_appended.connect(self._on_store_changed, Qt.DirectConnection)
        store.cleared.connect(self.refresh, Qt.DirectConnection)

        self.refresh()

    @property
    def pattern(self) -> str:
        return self._filter.pattern

    @property
    def regex_enabled(self) -> bool:
        return self._filter.use_regex

    def set_pattern(self, text: str) -> None:
        self.set_filter(text, self._filter.use_regex)

    def set_regex_mode(self, enabled: bool) -> None:
        self.set_filter(self._filter.pattern, enabled)

    def set_filter(self, pattern: str, use_regex: bool) -> None:
        pattern = pattern or ""
        if pattern == self._filter.pattern and use_regex == self._filter.use_regex:
            return
        try:
            new_filter = LogFilter.create(pattern, use_regex)
        except FilterCompileError as e:
            logger.info("Filter rejected: %s", e)
            self.filter_error.emit(str(e))
            raise
        self._filter = new_filter
        self.refresh()

    def matches(self, record: LogRecord) -> bool:
        return self._filter.matches(record)

    def records(self) -> Tuple[LogRecord, ...]:
        with self._lock:
            return self._records

    def refresh(self) -> None:
        """Re-filter the current store contents and notify listeners."""
        with self._lock:
            self._records = self._filter.apply(self._store.snapshot())
        self.view_changed.emit()

    def _on_store_changed(self, _record: object) -> None:
        self.refresh()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
