"""Timestamped rendering of serial messages.

Each message becomes one display line::

    [12:34:56.789] RX: Hello World
    [12:34:56.790] TX: 41 54 0D 0A
    [12:34:56.791] RX: 4F 4B (OK)

The display mode can be changed at any time; the next ``format`` call uses
the new mode.
"""

from __future__ import annotations

import datetime
import logging
from typing import Union

from typeguard import typechecked

from . import ENCODING
from .types import DisplayMode

logger = logging.getLogger("serial_talker.formatter")


def to_hex(payload: Union[bytes, str]) -> str:
    """Space-separated uppercase hex codes, one per byte or character."""
    if isinstance(payload, str):
        codes = [ord(c) for c in payload]
    else:
        codes = list(payload)
    return " ".join(f"{code:02X}" for code in codes)


@typechecked
class MessageFormatter:
    """Formats RX/TX payloads with a millisecond timestamp.

    Example::

        formatter = MessageFormatter(DisplayMode.HEX_AND_ASCII)
        print(formatter.format("OK", is_received=True))
        # [09:15:02.417] RX: 4F 4B (OK)
    """

    def __init__(
        self,
        display_mode: DisplayMode = DisplayMode.ASCII,
        encoding: str = ENCODING,
    ) -> None:
        """Initialize the formatter.

        Args:
            display_mode: Initial rendering mode.
            encoding: Used to turn ``bytes`` payloads into text for the
                      ASCII part of the rendering.  Undecodable bytes are
                      replaced, never raised.
        """
        self._display_mode = display_mode
        self.encoding = encoding

    @property
    def display_mode(self) -> DisplayMode:
        return self._display_mode

    def set_display_mode(self, mode: DisplayMode) -> None:
        """Switch rendering mode; takes effect on the next ``format`` call."""
        if mode is not self._display_mode:
            logger.debug("[FORMAT] Display mode %s -> %s", self._display_mode.name, mode.name)
        self._display_mode = mode

    def format(self, payload: Union[bytes, str], is_received: bool) -> str:
        """Return ``"[HH:MM:SS.mmm] RX: <payload>"`` (``TX`` when sent)."""
        timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]
        direction = "RX" if is_received else "TX"
        return f"[{timestamp}] {direction}: {self.render(payload)}"

    def render(self, payload: Union[bytes, str]) -> str:
        """Render the payload alone in the current display mode."""
        if not payload:
            return ""

        mode = self._display_mode
        if mode is DisplayMode.ASCII:
            return self._as_text(payload)
        if mode is DisplayMode.HEX:
            return to_hex(payload)
        if mode is DisplayMode.HEX_AND_ASCII:
            return f"{to_hex(payload)} ({self._as_text(payload)})"
        raise ValueError(f"Unhandled display mode {mode!r}")

    def _as_text(self, payload: Union[bytes, str]) -> str:
        if isinstance(payload, str):
            return payload
        return payload.decode(self.encoding, errors="replace")
