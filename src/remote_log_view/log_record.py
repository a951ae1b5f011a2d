from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum


class LogLevel(IntEnum):
    """Sender-side severity. Integer values match the wire format (Debug=0 .. Fatal=4)."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class LogRecord:
    """
    One decoded log entry.

    `timestamp` is the sender's clock, never the time of reception.
    """
    level: LogLevel
    timestamp: datetime
    message: str


@dataclass(frozen=True)
class NetworkLogRecord(LogRecord):
    """
    A LogRecord stamped with the UDP source endpoint it arrived from.

    The remote address/port come from recvfrom(), not from the payload.
    """
    remote_address: str
    remote_port: int

    @property
    def source(self) -> str:
        return f"{self.remote_address}:{self.remote_port}"
