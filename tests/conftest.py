"""
Pytest fixtures for remote log view tests.
"""

import socket
import threading
from datetime import datetime, timezone

import pytest
from PyQt5.QtCore import QCoreApplication, Qt

from remote_log_view.log_record import LogLevel, LogRecord
from remote_log_view.udp_listener import UdpLogReceiver


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One QCoreApplication for the whole run; QThread/QObject need it."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def make_record(message: str, level: LogLevel = LogLevel.INFO) -> LogRecord:
    return LogRecord(level=level, timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc), message=message)


class Collector:
    """Thread-safe subscriber that records what it receives."""

    def __init__(self) -> None:
        self.items = []
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)

    def __call__(self, item) -> None:
        with self._cond:
            self.items.append(item)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 2.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.items) >= count, timeout=timeout)

    def snapshot(self) -> list:
        with self._lock:
            return list(self.items)


def send_datagram(port: int, data: bytes, host: str = "127.0.0.1") -> tuple:
    """Send one datagram from a fresh loopback socket; returns its source address."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(("127.0.0.1", 0))
        sock.sendto(data, (host, port))
        return sock.getsockname()
    finally:
        sock.close()


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def receiver():
    """A receiver bound to an OS-assigned loopback port, stopped after the test."""
    r = UdpLogReceiver("127.0.0.1", 0)
    errors = Collector()
    r.error.connect(errors, Qt.DirectConnection)
    r.errors = errors
    yield r
    r.stop()
