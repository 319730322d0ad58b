"""
Serial Talker - interactive terminal core for devices on a serial line

This package provides the session and negotiation core of a serial terminal:

- **Session management** with event-driven receive, byte counters and uptime
- **Automatic baud rate negotiation** by probing a fixed list of candidate rates
- **Message formatting** with timestamps and ASCII / HEX / HEX+ASCII rendering
- **Command history** with terminal-style previous/next navigation

The port itself is reached through a small capability interface
(``serial_talker.port``); a pyserial-backed implementation is included.
"""

import logging
import os
from typing import List

logging.getLogger("serial_talker").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Default line settings.
# Override via environment variables:
#   SERIAL_TALKER_PORT / SERIAL_TALKER_BAUD_RATE / SERIAL_TALKER_DATA_BITS
#   SERIAL_TALKER_STOP_BITS / SERIAL_TALKER_PARITY
DEFAULT_PORT = os.environ.get("SERIAL_TALKER_PORT", "")
SERIAL_BAUD_RATE = int(os.environ.get("SERIAL_TALKER_BAUD_RATE", "9600"))
SERIAL_DATA_BITS = int(os.environ.get("SERIAL_TALKER_DATA_BITS", "8"))
SERIAL_STOP_BITS = int(os.environ.get("SERIAL_TALKER_STOP_BITS", "1"))
SERIAL_PARITY = os.environ.get("SERIAL_TALKER_PARITY", "NONE")  # NONE, ODD, EVEN, MARK, SPACE

# Terminal presentation
DISPLAY_MODE = os.environ.get("SERIAL_TALKER_DISPLAY_MODE", "ASCII")  # ASCII, HEX, HEX_AND_ASCII
LINE_ENDING = os.environ.get("SERIAL_TALKER_LINE_ENDING", "CRLF")    # CR, LF, CRLF, NONE
ENCODING = "utf-8"

# Command history
HISTORY_MAX_SIZE = 50

# Baud rate negotiation.  Order matters: the most common defaults go first.
NEGOTIATION_BAUD_RATES: List[int] = [
    9600, 115200, 19200, 38400, 57600,
    14400, 28800, 4800, 2400, 1200,
]
NEGOTIATION_PROBE = "AT\r\n"
NEGOTIATION_SETTLE_MS = 500
NEGOTIATION_NOT_FOUND = -1

# Receive listener and transport timing
SERIAL_POLL_INTERVAL_S = 0.01  # listener thread sleep granularity (10 ms)
SERIAL_WRITE_TIMEOUT = 10      # seconds; blocking with failsafe
PORT_SCAN_INTERVAL_S = 2.0     # how often a UI should refresh the port list
