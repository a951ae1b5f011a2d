from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from PyQt5.QtCore import QCoreApplication, QTimer

from .app_config import load_or_create_config
from .errors import DecodeError, FilterCompileError
from .log_filter import FilteredLogView
from .log_record import NetworkLogRecord
from .log_store import DEFAULT_CAPACITY, LogStore
from .udp_listener import DEFAULT_BIND_IP, UdpLogReceiver
from .udp_log_utils import format_record
from .udp_sender import UdpLogSender

APP_ORG = "LocalTools"
APP_NAME = "RemoteLogView"
APP_VERSION = "0.3.0"

EXIT_OK = 0
EXIT_LISTENER_FAILED = 1
EXIT_BAD_FILTER = 2

COMMANDS = ("listen", "send")

# Qt's event loop never returns to Python on its own; a short tick lets
# SIGINT/SIGTERM handlers run.
SIGNAL_TICK_MS = 200

logger = logging.getLogger(__name__)


def _port(text: str) -> int:
    port = int(text)
    if not (0 <= port <= 65535):
        raise argparse.ArgumentTypeError(f"port must be between 0 and 65535, got {port}")
    return port


def _capacity(text: str) -> int:
    capacity = int(text)
    if capacity < 1:
        raise argparse.ArgumentTypeError(f"capacity must be >= 1, got {capacity}")
    return capacity


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(prog="remote-log-view", description="UDP log receiver")
    sub = parser.add_subparsers(dest="command")

    listen = sub.add_parser("listen", parents=[common], help="Receive and print log records (default)")
    listen.add_argument("--bind", default=DEFAULT_BIND_IP, help="Local address to bind")
    listen.add_argument("--port", type=_port, default=None, help="UDP port (default: config.ini)")
    listen.add_argument("--capacity", type=_capacity, default=DEFAULT_CAPACITY, help="Records kept in memory")
    listen.add_argument("--filter", default="", help="Only print records whose message matches")
    listen.add_argument("--regex", action="store_true", help="Treat --filter as a regular expression")

    send = sub.add_parser("send", parents=[common], help="Send log records to a listener")
    send.add_argument("--host", default="127.0.0.1", help="Listener host")
    send.add_argument("--port", type=_port, default=None, help="Listener port (default: config.ini)")
    send.add_argument("--level", default="Info", help="Debug | Info | Warn | Error | Fatal")
    send.add_argument("message", nargs="+", help="One datagram per message")

    return parser


def _cmd_listen(args: argparse.Namespace, default_port: int) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setOrganizationName(APP_ORG)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)

    store = LogStore(capacity=args.capacity)
    view = FilteredLogView(store)
    try:
        view.set_filter(args.filter, args.regex)
    except FilterCompileError as e:
        logger.error("%s", e)
        return EXIT_BAD_FILTER

    receiver = UdpLogReceiver(args.bind, args.port if args.port is not None else default_port)
    if not receiver.prepare():
        return EXIT_LISTENER_FAILED

    def print_record(record: NetworkLogRecord) -> None:
        if view.matches(record):
            print(format_record(record), flush=True)

    # Order matters: store first, so the view already holds the record.
    receiver.subscribe(store.append)
    receiver.subscribe(print_record)

    quitting = False

    def request_quit(signum, _frame) -> None:
        nonlocal quitting
        logger.info("Received signal %d, shutting down...", signum)
        quitting = True
        app.exit(EXIT_OK)

    def on_running_changed(running: bool) -> None:
        if not running and not quitting:
            app.exit(EXIT_LISTENER_FAILED)

    signal.signal(signal.SIGINT, request_quit)
    signal.signal(signal.SIGTERM, request_quit)
    receiver.running_changed.connect(on_running_changed)

    tick = QTimer()
    tick.timeout.connect(lambda: None)
    tick.start(SIGNAL_TICK_MS)

    receiver.start()
    try:
        rc = app.exec_()
    finally:
        quitting = True
        receiver.stop()
        tick.stop()

    logger.info("Received %d records (%d kept, %d shown)", store.total_appended, len(store), len(view))
    return rc


def _cmd_send(args: argparse.Namespace, default_port: int) -> int:
    port = args.port if args.port is not None else default_port
    with UdpLogSender(args.host, port) as sender:
        for text in args.message:
            try:
                sender.send(args.level, text)
            except DecodeError as e:
                logger.error("%s", e)
                return EXIT_LISTENER_FAILED
            except OSError as e:
                logger.error("Send to %s:%d failed: %s", args.host, port, e)
                return EXIT_LISTENER_FAILED
        logger.info("Sent %d records to %s:%d", sender.sent_count, args.host, port)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # "listen" is the default subcommand
    if not argv or argv[0] not in COMMANDS + ("-h", "--help"):
        argv.insert(0, "listen")
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )

    cfg = load_or_create_config(APP_ORG, APP_NAME, APP_VERSION)
    logger.debug("Config: %s", cfg.config_path)

    if args.command == "send":
        return _cmd_send(args, cfg.listen_port)
    return _cmd_listen(args, cfg.listen_port)


if __name__ == "__main__":
    raise SystemExit(main())
