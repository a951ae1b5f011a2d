"""Tests for the console entry point."""

import json
import socket

import pytest

from remote_log_view import app_config, main as cli


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(app_config, "_user_app_dir", lambda org, name: tmp_path / org / name)
    return tmp_path


@pytest.fixture
def sink():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


class TestParser:
    def test_listen_defaults(self):
        args = cli._build_parser().parse_args(["listen"])
        assert args.bind == "0.0.0.0"
        assert args.port is None
        assert args.capacity == 1000
        assert args.filter == ""
        assert args.regex is False

    def test_send_args(self):
        args = cli._build_parser().parse_args(["send", "--level", "Warn", "a", "b"])
        assert args.level == "Warn"
        assert args.message == ["a", "b"]


class TestSendCommand:
    def test_sends_one_datagram_per_message(self, sink):
        port = sink.getsockname()[1]
        rc = cli.main(["send", "--port", str(port), "--level", "Error", "first", "second"])

        assert rc == cli.EXIT_OK
        docs = [json.loads(sink.recvfrom(65535)[0]) for _ in range(2)]
        assert [d["Message"] for d in docs] == ["first", "second"]
        assert {d["Level"] for d in docs} == {"Error"}

    def test_bad_level(self, sink):
        rc = cli.main(["send", "--port", str(sink.getsockname()[1]), "--level", "Loud", "x"])
        assert rc == cli.EXIT_LISTENER_FAILED


class TestListenCommand:
    def test_invalid_regex_exits_early(self):
        rc = cli.main(["listen", "--bind", "127.0.0.1", "--port", "0", "--filter", "(", "--regex"])
        assert rc == cli.EXIT_BAD_FILTER

    def test_default_subcommand_is_listen(self):
        rc = cli.main(["--bind", "127.0.0.1", "--port", "0", "--filter", "[", "--regex"])
        assert rc == cli.EXIT_BAD_FILTER

    def test_port_in_use(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            blocker.bind(("127.0.0.1", 0))
            rc = cli.main(["listen", "--bind", "127.0.0.1", "--port", str(blocker.getsockname()[1])])
            assert rc == cli.EXIT_LISTENER_FAILED
        finally:
            blocker.close()


class TestArgumentValidation:
    @pytest.mark.parametrize(
        "argv",
        [
            ["listen", "--port", "70000"],
            ["listen", "--port", "-1"],
            ["listen", "--port", "abc"],
            ["listen", "--capacity", "0"],
            ["send", "--port", "65536", "x"],
        ],
    )
    def test_out_of_range_values_rejected_by_parser(self, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(argv)
        assert exc_info.value.code == 2
        assert "argument --" in capsys.readouterr().err
