from __future__ import annotations

import asyncio
import logging
import select
import socket
import threading
from functools import partial
from typing import Callable, Dict, Optional, Tuple

from PyQt5.QtCore import QObject, Qt, QThread, pyqtSignal

from .errors import BindError, DecodeError, InvalidStateError, TransportError
from .log_record import NetworkLogRecord
from .udp_log_utils import MAX_DATAGRAM_SIZE, decode_datagram

logger = logging.getLogger(__name__)

DEFAULT_BIND_IP = "0.0.0.0"
DEFAULT_PORT = 8085

LogCallback = Callable[[NetworkLogRecord], None]


class UdpListenerThread(QThread):
    """
    Background receive loop over an already-bound UDP socket.

    Important:
    - The loop waits in select() on the data socket and a private wake-up
      socket pair. stop() writes to the wake-up pair, so the loop returns
      at once without timeout polling.
    - The data socket belongs to the caller; the loop never closes it.
    - Any socket error while running ends the loop (transport_failed).
      There is no retry.
    """

    record_received = pyqtSignal(object)
    transport_failed = pyqtSignal(str)
    rx_stats = pyqtSignal(int, int, int)  # packets, records, dropped

    def __init__(self, sock: socket.socket, *, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._sock = sock
        self._stop_evt = threading.Event()
        self._wake_r, self._wake_w = socket.socketpair()
        self._loop_ident: Optional[int] = None

        self._packets = 0
        self._records = 0
        self._dropped = 0

    @property
    def stopping(self) -> bool:
        return self._stop_evt.is_set()

    def in_loop_thread(self) -> bool:
        return self._loop_ident == threading.get_ident()

    def stop(self) -> None:
        self._stop_evt.set()
        try:
            self._wake_w.send(b"\0")
        except OSError:
            # loop already exited and released the wake-up pair
            pass

    def run(self) -> None:
        self._loop_ident = threading.get_ident()
        sock = self._sock
        try:
            while not self._stop_evt.is_set():
                try:
                    rlist, _, _ = select.select([sock, self._wake_r], [], [])
                except (OSError, ValueError) as e:
                    if self._stop_evt.is_set():
                        break
                    self.transport_failed.emit(f"select failed: {e}")
                    break

                if self._stop_evt.is_set():
                    break
                if sock not in rlist:
                    continue

                try:
                    data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
                except OSError as e:
                    if self._stop_evt.is_set():
                        break
                    self.transport_failed.emit(f"recvfrom failed: {e}")
                    break

                self._packets += 1
                try:
                    record = decode_datagram(data, addr)
                except DecodeError as e:
                    self._dropped += 1
                    logger.debug("Dropped datagram: %s", e)
                else:
                    self._records += 1
                    self.record_received.emit(record)

                self.rx_stats.emit(self._packets, self._records, self._dropped)
        finally:
            self._wake_r.close()
            self._wake_w.close()


class UdpLogReceiver(QObject):
    """
    Lifecycle owner for one UDP listening port.

        receiver = UdpLogReceiver()
        receiver.configure(9000)
        if receiver.prepare():          # bind; False + last_error on failure
            receiver.subscribe(store.append)
            receiver.start()            # receive loop on its own QThread
        ...
        receiver.stop()                 # safe to repeat, from any thread

    Subscribers connected with Qt.DirectConnection (the default) run on the
    receive thread and must stay cheap. A UI passes Qt.QueuedConnection to be
    called on its own thread instead. Once stop() is called, no subscriber
    receives another record from that run, queued ones included.
    """

    log_received = pyqtSignal(object)
    running_changed = pyqtSignal(bool)
    error = pyqtSignal(str)
    rx_stats = pyqtSignal(int, int, int)  # packets, records, dropped

    def __init__(
        self,
        bind_ip: str = DEFAULT_BIND_IP,
        port: int = DEFAULT_PORT,
        *,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._bind_ip = bind_ip
        self._port = self._validate_port(port)

        # Guards _sock, _thread and _running; shared by caller and loop threads.
        self._lock = threading.RLock()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[UdpListenerThread] = None
        self._running = False

        self._subscribers: Dict[LogCallback, Callable[[object], None]] = {}
        self._stop_requested = threading.Event()
        self._stop_requested.set()
        self.last_error: Optional[Exception] = None

    # ---------------- Configuration ----------------

    @staticmethod
    def _validate_port(port: int) -> int:
        port = int(port)
        if not (0 <= port <= 65535):
            raise ValueError(f"port must be between 0 and 65535, got {port}")
        return port

    @property
    def bind_ip(self) -> str:
        return self._bind_ip

    @property
    def port(self) -> int:
        return self._port

    def configure(self, port: int) -> None:
        port = self._validate_port(port)
        with self._lock:
            if self._running:
                raise InvalidStateError("Cannot modify port while the listener is running.")
            self._port = port

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def is_prepared(self) -> bool:
        with self._lock:
            return self._sock is not None

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        with self._lock:
            if self._sock is None:
                return None
            host, port = self._sock.getsockname()[:2]
            return host, port

    # ---------------- Subscribers ----------------

    def subscribe(self, callback: LogCallback, connection_type=Qt.DirectConnection) -> None:
        with self._lock:
            if callback in self._subscribers:
                return

            def slot(record: object) -> None:
                # a subscriber earlier in line may have stopped the listener
                if self._stop_requested.is_set():
                    return
                try:
                    callback(record)  # type: ignore[arg-type]
                except Exception:
                    logger.exception("Log subscriber %r failed", callback)

            self._subscribers[callback] = slot
        self.log_received.connect(slot, type=connection_type)

    def unsubscribe(self, callback: LogCallback) -> bool:
        with self._lock:
            slot = self._subscribers.pop(callback, None)
        if slot is None:
            return False
        try:
            self.log_received.disconnect(slot)
        except TypeError:
            return False
        return True

    # ---------------- Lifecycle ----------------

    def prepare(self) -> bool:
        """
        Bind the UDP socket on the configured port.

        Returns False (and sets last_error) if the port cannot be bound.
        """
        with self._lock:
            if self._running:
                raise InvalidStateError("Cannot prepare while the listener is running.")
            self._close_socket_locked()

            sock = self._create_socket()
            try:
                sock.bind((self._bind_ip, self._port))
            except OSError as e:
                sock.close()
                err = BindError(self._bind_ip, self._port, e)
                self.last_error = err
            else:
                self._sock = sock
                self.last_error = None
                err = None
                host, port = sock.getsockname()[:2]

        if err is not None:
            logger.warning("%s", err)
            self.error.emit(str(err))
            return False

        logger.info("Bound UDP %s:%d", host, port)
        return True

    async def prepare_async(self) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.prepare)

    def start(self) -> None:
        """Begin receiving on the prepared socket. No-op if not prepared or already running."""
        with self._lock:
            if self._running or self._sock is None:
                return
            previous = self._thread
        # a loop that ended on its own (transport error, stop from a subscriber)
        if previous is not None and not previous.in_loop_thread():
            previous.wait()

        with self._lock:
            if self._running or self._sock is None:
                return

            t = UdpListenerThread(self._sock)
            t.record_received.connect(partial(self._relay_record, t), Qt.DirectConnection)
            t.transport_failed.connect(self._on_transport_failed, Qt.DirectConnection)
            t.rx_stats.connect(self.rx_stats, Qt.DirectConnection)

            self._thread = t
            self._running = True
            self._stop_requested.clear()
            t.start()

        logger.info("Listening UDP %s:%d", self._bind_ip, self._port)
        self.running_changed.emit(True)

    async def start_async(self) -> None:
        self.start()

    def stop(self) -> None:
        """Stop the loop and release the socket. Safe to repeat, from any thread."""
        self._stop_requested.set()
        with self._lock:
            t = self._thread
            was_running = self._running
            self._running = False

        if t is not None:
            t.stop()
            # Called from a subscriber on the loop thread: the loop exits on return.
            # The thread reference is kept until a later start() or stop() joins it.
            if not t.in_loop_thread():
                t.wait()
                with self._lock:
                    if self._thread is t:
                        self._thread = None

        with self._lock:
            self._close_socket_locked()

        if was_running:
            logger.info("Listener stopped")
            self.running_changed.emit(False)

    async def stop_async(self) -> None:
        self.stop()

    # ---------------- Internals ----------------

    def _create_socket(self) -> socket.socket:
        return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def _close_socket_locked(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def _relay_record(self, thread: UdpListenerThread, record: object) -> None:
        # Runs on the loop thread; drop anything racing a concurrent stop().
        if thread.stopping:
            return
        self.log_received.emit(record)

    def _on_transport_failed(self, msg: str) -> None:
        with self._lock:
            # a concurrent stop() wins
            if not self._running:
                return
            self._running = False
            self._close_socket_locked()
            self.last_error = TransportError(msg)

        logger.error("UDP listener error: %s", msg)
        self.error.emit(msg)
        self.running_changed.emit(False)
