"""UDP log sender: emits wire-format records to a listening viewer (dev/test tool)."""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from .log_record import LogLevel, LogRecord
from .udp_listener import DEFAULT_PORT
from .udp_log_utils import encode_record, parse_level

logger = logging.getLogger(__name__)


class UdpLogSender:
    def __init__(self, host: str = "127.0.0.1", port: int = DEFAULT_PORT) -> None:
        self._target = (host, port)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sent = 0

    @property
    def target(self) -> Tuple[str, int]:
        return self._target

    @property
    def sent_count(self) -> int:
        return self._sent

    @property
    def local_address(self) -> Tuple[str, int]:
        """Source endpoint; only meaningful after the first send."""
        host, port = self._sock.getsockname()[:2]
        return host, port

    def send(
        self,
        level: Union[LogLevel, str, int],
        message: str,
        timestamp: Optional[datetime] = None,
    ) -> LogRecord:
        record = LogRecord(
            level=level if isinstance(level, LogLevel) else parse_level(level),
            timestamp=timestamp or datetime.now(timezone.utc),
            message=message,
        )
        self.send_record(record)
        return record

    def send_record(self, record: LogRecord) -> None:
        self.send_raw(encode_record(record))

    def send_raw(self, data: bytes) -> None:
        self._sock.sendto(data, self._target)
        self._sent += 1
        logger.debug("Sent %d bytes to %s:%d", len(data), *self._target)

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> "UdpLogSender":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
