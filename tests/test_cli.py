"""
Command-line interface test suite.

The terminal and negotiate commands are driven with fake ports by replacing
``PySerialPortFactory`` inside ``serial_talker.cli``; stdin is replaced by a
scripted ``input``.

Run with full visibility:
    pytest tests/test_cli.py -v -s
"""

from __future__ import annotations

import pytest

from fake_ports import FakePort, FakePortFactory
from serial_talker import cli
from serial_talker.exceptions import NegotiationExhaustedError, SerialTalkerError
from serial_talker.types import Parity


def _report(label, detail=""):
    # type: (str, str) -> None
    if detail:
        print("  [{}] {}".format(label, detail))
    else:
        print("  [{}]".format(label))


def _script(monkeypatch, lines):
    # type: (pytest.MonkeyPatch, list) -> None
    """Feed *lines* to ``input()``; EOF afterwards."""
    remaining = list(lines)

    def fake_input(prompt=""):
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    monkeypatch.setattr("builtins.input", fake_input)


@pytest.fixture()
def fake_port(monkeypatch):
    port = FakePort("/dev/ttyFAKE0", respond_at={9600})
    factory = FakePortFactory(port)
    monkeypatch.setattr(cli, "PySerialPortFactory", lambda: factory)
    return port


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Argument Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestCLIArgs:
    """Help output lists every flag."""

    def test_terminal_help(self, capsys):
        # type: (pytest.CaptureFixture) -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["terminal", "--help"])
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        for flag in ("--port", "--baud-rate", "--auto-baud", "--display-mode",
                     "--line-ending", "--parity", "--data-bits", "--stop-bits"):
            assert flag in out, "{} missing from help".format(flag)

    def test_negotiate_help(self, capsys):
        # type: (pytest.CaptureFixture) -> None
        with pytest.raises(SystemExit):
            cli.main(["negotiate", "--help"])
        assert "--port" in capsys.readouterr().out

    def test_command_required(self):
        # type: () -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code != 0

    def test_missing_port(self, capsys):
        # type: (pytest.CaptureFixture) -> None
        assert cli.main(["terminal", "--port", ""]) == 1
        assert "No serial port" in capsys.readouterr().err


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Negotiate
# ═══════════════════════════════════════════════════════════════════════════

class TestNegotiateCommand:
    """``negotiate`` and the helper it shares with ``terminal --auto-baud``."""

    def test_negotiate_prints_rate(self, fake_port, capsys, monkeypatch):
        # type: (FakePort, pytest.CaptureFixture, pytest.MonkeyPatch) -> None
        monkeypatch.setattr("serial_talker.negotiator.time.sleep", lambda s: None)
        assert cli.main(["negotiate", "--port", fake_port.name]) == 0
        assert capsys.readouterr().out.strip() == "9600"
        assert fake_port.call_names()[-1] == "close"

    def test_negotiate_exhausted(self, monkeypatch, capsys):
        # type: (pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        monkeypatch.setattr("serial_talker.negotiator.time.sleep", lambda s: None)
        silent = FakePort("/dev/ttySILENT")
        factory = FakePortFactory(silent)
        monkeypatch.setattr(cli, "PySerialPortFactory", lambda: factory)
        assert cli.main(["negotiate", "--port", silent.name]) == 1
        assert "negotiation failed" in capsys.readouterr().err.lower()
        assert not silent.is_opened()

    def test_helper_raises_for_unopenable_port(self):
        # type: () -> None
        with pytest.raises(SerialTalkerError):
            cli.negotiate_baud_rate(FakePortFactory(), "/dev/ttyGONE", 8, 1, Parity.NONE)

    def test_helper_raises_when_exhausted(self, monkeypatch):
        # type: (pytest.MonkeyPatch) -> None
        monkeypatch.setattr("serial_talker.negotiator.time.sleep", lambda s: None)
        factory = FakePortFactory(FakePort("P"))
        with pytest.raises(NegotiationExhaustedError):
            cli.negotiate_baud_rate(factory, "P", 8, 1, Parity.NONE)


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Terminal
# ═══════════════════════════════════════════════════════════════════════════

class TestTerminal:
    """Interactive loop with scripted input."""

    def test_send_lines_with_line_ending(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        _script(monkeypatch, ["hello", ":quit"])
        assert cli.main(["terminal", "--port", fake_port.name]) == 0
        assert fake_port.written == ["hello\r\n"]
        out = capsys.readouterr().out
        assert "Connected to /dev/ttyFAKE0" in out
        assert "TX: hello" in out
        assert "Disconnected" in out
        assert "close" in fake_port.call_names()

    def test_mode_switch_and_repeat(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        _script(monkeypatch, ["hello", ":mode hex", "!!", ":history", ":stats"])
        assert cli.main(["terminal", "--port", fake_port.name, "--line-ending", "lf"]) == 0
        assert fake_port.written == ["hello\n", "hello\n"]
        out = capsys.readouterr().out
        _report("OUTPUT", out.replace("\n", " | "))
        assert "TX: 68 65 6C 6C 6F" in out
        assert "Display mode: HEX" in out
        assert "  1  hello" in out
        assert "  2  hello" not in out
        assert "Sent 12 bytes" in out

    def test_prev_recalls_command(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        _script(monkeypatch, ["one", "two", ":prev", ":prev", "!!"])
        assert cli.main(["terminal", "--port", fake_port.name, "--line-ending", "none"]) == 0
        assert fake_port.written == ["one", "two", "one"]
        out = capsys.readouterr().out
        assert "> two" in out
        assert "> one" in out

    def test_received_data_is_formatted(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        def fake_input(prompt=""):
            if fake_port.listener is not None and not fake_port.written:
                fake_port.inject("OK\r\n")
                fake_port.written.append("")
                return ":help"
            raise EOFError

        monkeypatch.setattr("builtins.input", fake_input)
        assert cli.main(["terminal", "--port", fake_port.name, "--display-mode", "hex_and_ascii"]) == 0
        out = capsys.readouterr().out
        assert "RX: 4F 4B (OK)" in out
        assert ":history" in out

    def test_auto_baud(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        monkeypatch.setattr("serial_talker.negotiator.time.sleep", lambda s: None)
        _script(monkeypatch, [])
        assert cli.main(["terminal", "--port", fake_port.name, "--auto-baud", "--baud-rate", "115200"]) == 0
        assert "Device answered at 9600 baud" in capsys.readouterr().out
        assert fake_port.baud_rate == 9600

    def test_connect_failure_exit_code(self, monkeypatch, capsys):
        # type: (pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        factory = FakePortFactory()
        monkeypatch.setattr(cli, "PySerialPortFactory", lambda: factory)
        assert cli.main(["terminal", "--port", "/dev/ttyGONE"]) == 1
        assert "Failed to open port: /dev/ttyGONE" in capsys.readouterr().err

    def test_bad_display_mode(self, fake_port, capsys):
        # type: (FakePort, pytest.CaptureFixture) -> None
        assert cli.main(["terminal", "--port", fake_port.name, "--display-mode", "octal"]) == 1
        assert "display mode" in capsys.readouterr().err.lower()

    def test_mode_prefix_is_sent_as_text(self, fake_port, monkeypatch, capsys):
        # type: (FakePort, pytest.MonkeyPatch, pytest.CaptureFixture) -> None
        _script(monkeypatch, [":modem", ":mode"])
        assert cli.main(["terminal", "--port", fake_port.name, "--line-ending", "none"]) == 0
        assert fake_port.written == [":modem"]
        captured = capsys.readouterr()
        assert "TX: :modem" in captured.out
        assert captured.err.count("Invalid display mode") == 1
