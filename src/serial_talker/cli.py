"""Command-line interface for Serial Talker."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from . import (
    DEFAULT_PORT,
    DISPLAY_MODE,
    LINE_ENDING,
    PORT_SCAN_INTERVAL_S,
    SERIAL_BAUD_RATE,
    SERIAL_DATA_BITS,
    SERIAL_PARITY,
    SERIAL_STOP_BITS,
)
from .exceptions import NegotiationExhaustedError, NotConnectedError, SerialTalkerError
from .formatter import MessageFormatter
from .history import CommandHistory
from .negotiator import require_baud_rate
from .port import ErrorReporter, PortFactory, PySerialPortFactory
from .session import SerialSessionManager
from .types import DisplayMode, Parity

_LINE_ENDINGS = {"CR": "\r", "LF": "\n", "CRLF": "\r\n", "NONE": ""}

_TERMINAL_HELP = """\
Type a line and press ENTER to send it.  Meta commands:
  :history           list sent commands
  :prev / :next      recall the previous / next command
  !!                 send the recalled command (or the last one)
  :mode MODE         switch display mode (ascii, hex, hex_and_ascii)
  :stats             show byte counters and uptime
  :help              show this help
  :quit              disconnect and exit"""


class StderrErrorReporter(ErrorReporter):
    """Prints error messages to stderr."""

    def report_error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr, flush=True)


def negotiate_baud_rate(
    factory: PortFactory,
    port_name: str,
    data_bits: int,
    stop_bits: int,
    parity: Parity,
) -> int:
    """Open *port_name*, probe for a baud rate and close the port again.

    Raises:
        SerialTalkerError: If the port cannot be opened.
        NegotiationExhaustedError: If no candidate rate got a response.
    """
    port = factory.create_port(port_name)
    if not port.open_port():
        raise SerialTalkerError(f"Failed to open port: {port_name}")
    try:
        return require_baud_rate(port, data_bits, stop_bits, parity, port_name=port_name)
    finally:
        port.close_port()


def command_list(args) -> int:
    """List available serial ports."""
    factory = PySerialPortFactory()
    ports = factory.describe_ports()
    if not ports:
        print("No serial ports found.")
    else:
        print("Available serial ports:")
        for p in ports:
            print(f"  {p}")

    if not args.watch:
        return 0

    known = set(factory.list_ports())
    try:
        while True:
            time.sleep(PORT_SCAN_INTERVAL_S)
            current = set(factory.list_ports())
            for name in sorted(current - known):
                print(f"+ {name}")
            for name in sorted(known - current):
                print(f"- {name}")
            known = current
    except KeyboardInterrupt:
        return 0


def command_negotiate(args) -> int:
    """Probe a port for a working baud rate."""
    if not args.serial_port:
        print("Error: No serial port given. Pass --port or set SERIAL_TALKER_PORT.", file=sys.stderr)
        return 1

    try:
        baud_rate = negotiate_baud_rate(
            PySerialPortFactory(),
            args.serial_port,
            args.data_bits,
            args.stop_bits,
            Parity.parse(args.parity),
        )
    except SerialTalkerError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    print(baud_rate)
    return 0


def _send_line(
    manager: SerialSessionManager,
    formatter: MessageFormatter,
    history: CommandHistory,
    line: str,
    line_ending: str,
) -> None:
    manager.send_message(line + line_ending)
    history.add(line)
    print(formatter.format(line, is_received=False), flush=True)


def _run_terminal_loop(
    manager: SerialSessionManager,
    formatter: MessageFormatter,
    history: CommandHistory,
    line_ending: str,
) -> None:
    recalled: Optional[str] = None

    while manager.is_connected():
        try:
            line = input()
        except EOFError:
            break

        command = line.strip()
        if command == ":quit":
            break
        if command == ":help":
            print(_TERMINAL_HELP)
            continue
        if command == ":history":
            for index, entry in enumerate(history.entries(), start=1):
                print(f"{index:3d}  {entry}")
            continue
        if command in (":prev", ":next"):
            recalled = history.get_previous() if command == ":prev" else history.get_next()
            print(f"> {recalled}" if recalled else "> (empty)")
            continue
        if command == ":mode" or command.startswith(":mode "):
            try:
                formatter.set_display_mode(DisplayMode.parse(command[len(":mode"):]))
                print(f"Display mode: {formatter.display_mode.name}")
            except ValueError as e:
                print(f"Error: {str(e)}", file=sys.stderr)
            continue
        if command == ":stats":
            print(
                f"Sent {manager.get_bytes_sent()} bytes, received "
                f"{manager.get_bytes_received()} bytes, up "
                f"{manager.get_uptime_seconds()}s"
            )
            continue
        if command == "!!":
            entries = history.entries()
            line = recalled or (entries[-1] if entries else "")
            if not line:
                continue

        recalled = None
        history.reset()
        try:
            _send_line(manager, formatter, history, line, line_ending)
        except NotConnectedError:
            break
        except SerialTalkerError as e:
            print(f"Error: {str(e)}", file=sys.stderr)


def command_terminal(args) -> int:
    """Connect to a port and exchange lines interactively."""
    if not args.serial_port:
        print("Error: No serial port given. Pass --port or set SERIAL_TALKER_PORT.", file=sys.stderr)
        return 1

    try:
        parity = Parity.parse(args.parity)
        formatter = MessageFormatter(DisplayMode.parse(args.display_mode))
    except (SerialTalkerError, ValueError) as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    factory = PySerialPortFactory()
    history = CommandHistory()

    baud_rate = args.baud_rate
    if args.auto_baud:
        print(f"Negotiating baud rate on {args.serial_port} ...", flush=True)
        try:
            baud_rate = negotiate_baud_rate(
                factory, args.serial_port, args.data_bits, args.stop_bits, parity,
            )
            print(f"Device answered at {baud_rate} baud")
        except NegotiationExhaustedError:
            print(f"No response; falling back to {baud_rate} baud", file=sys.stderr)
        except SerialTalkerError as e:
            print(f"Error: {str(e)}", file=sys.stderr)
            return 1

    manager = (
        SerialSessionManager(
            factory,
            default_data_bits=args.data_bits,
            default_stop_bits=args.stop_bits,
            default_parity=parity,
            error_reporter=StderrErrorReporter(),
        )
        .on_data_received(
            lambda text: print(formatter.format(text.rstrip("\r\n"), is_received=True), flush=True)
        )
        .on_connected(lambda port: print(f"Connected to {port}. Type :help for commands."))
        .on_disconnected(lambda reason: print(reason))
    )

    with manager:
        if not manager.connect(args.serial_port, baud_rate):
            return 1
        _run_terminal_loop(manager, formatter, history, _LINE_ENDINGS[args.line_ending])
    return 0


def _add_line_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--port", dest="serial_port", type=str, default=DEFAULT_PORT or None,
        help="Serial port path (e.g. /dev/ttyUSB0 or COM3). "
             "Default: $SERIAL_TALKER_PORT.",
    )
    parser.add_argument(
        "--data-bits", type=int, default=SERIAL_DATA_BITS, choices=[5, 6, 7, 8],
        help=f"Data bits (default: {SERIAL_DATA_BITS})",
    )
    parser.add_argument(
        "--stop-bits", type=int, default=SERIAL_STOP_BITS, choices=[1, 2],
        help=f"Stop bits (default: {SERIAL_STOP_BITS})",
    )
    parser.add_argument(
        "--parity", type=str, default=SERIAL_PARITY,
        help=f"Parity: none, odd, even, mark, space (default: {SERIAL_PARITY})",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Serial Talker - talk to devices over a serial line"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False,
        help="Log library activity to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # List ports
    list_parser = subparsers.add_parser("list", help="List available serial ports")
    list_parser.add_argument(
        "--watch", action="store_true", default=False,
        help=f"Keep polling every {PORT_SCAN_INTERVAL_S:g}s and report added/removed ports",
    )
    list_parser.set_defaults(func=command_list)

    # Negotiate
    negotiate_parser = subparsers.add_parser(
        "negotiate", help="Probe a port for a working baud rate",
    )
    _add_line_arguments(negotiate_parser)
    negotiate_parser.set_defaults(func=command_negotiate)

    # Terminal
    term_parser = subparsers.add_parser("terminal", help="Interactive serial terminal")
    _add_line_arguments(term_parser)
    term_parser.add_argument(
        "--baud-rate", type=int, default=SERIAL_BAUD_RATE,
        help=f"Baud rate (default: {SERIAL_BAUD_RATE})",
    )
    term_parser.add_argument(
        "--auto-baud", action="store_true", default=False,
        help="Negotiate the baud rate first; --baud-rate is the fallback",
    )
    term_parser.add_argument(
        "--display-mode", type=str, default=DISPLAY_MODE,
        help=f"ascii, hex or hex_and_ascii (default: {DISPLAY_MODE})",
    )
    term_parser.add_argument(
        "--line-ending", type=str.upper, default=LINE_ENDING, choices=sorted(_LINE_ENDINGS),
        help=f"Appended to every sent line (default: {LINE_ENDING})",
    )
    term_parser.set_defaults(func=command_terminal)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
