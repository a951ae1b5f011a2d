"""
Exceptions raised by the log ingestion core.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

__all__ = [
    "RemoteLogViewError",
    "InvalidStateError",
    "BindError",
    "DecodeError",
    "TransportError",
    "FilterCompileError",
]


class RemoteLogViewError(Exception):
    """Base exception for all remote log view errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidStateError(RemoteLogViewError):
    """Raised when an operation is not allowed in the current listener state."""


class BindError(RemoteLogViewError):
    """The UDP socket could not be bound. Returned by prepare(), never raised by it."""

    def __init__(self, bind_ip: str, port: int, cause: OSError) -> None:
        super().__init__(
            f"could not bind UDP {bind_ip}:{port}: {cause.strerror or cause}",
            {"errno": cause.errno},
        )
        self.bind_ip = bind_ip
        self.port = port
        self.cause = cause


class DecodeError(RemoteLogViewError):
    """A datagram payload is not a valid log record."""

    def __init__(self, message: str, source: Optional[Tuple[str, int]] = None) -> None:
        details = {}
        if source is not None:
            details["source"] = f"{source[0]}:{source[1]}"
        super().__init__(message, details)
        self.source = source


class TransportError(RemoteLogViewError):
    """The socket failed during an active receive."""


class FilterCompileError(RemoteLogViewError, ValueError):
    """The filter pattern is not a valid regular expression."""

    def __init__(self, pattern: str, cause: Exception) -> None:
        super().__init__(f"invalid regular expression {pattern!r}: {cause}")
        self.pattern = pattern
        self.cause = cause
