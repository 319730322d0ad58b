"""Type definitions for Serial Talker."""

from __future__ import annotations

import dataclasses
import enum
from typing import Callable

from .exceptions import ParameterApplyError

# Callback types
TextCallback = Callable[[str], None]  # on_data_received / on_error / on_connected / on_disconnected

# Event masks understood by PortHandle.add_event_listener
MASK_RXCHAR = 0x01  # receive data available; event value is the byte count
MASK_ERR = 0x80     # the transport failed; event value is 0

VALID_DATA_BITS = (5, 6, 7, 8)
VALID_STOP_BITS = (1, 2)


class Parity(enum.IntEnum):
    """Line parity, using the conventional serial-library numeric codes."""
    NONE = 0
    ODD = 1
    EVEN = 2
    MARK = 3
    SPACE = 4

    @classmethod
    def parse(cls, value: str) -> Parity:
        """Resolve a parity from its name (``"even"``) or initial (``"E"``)."""
        key = value.strip().upper()
        for member in cls:
            if key in (member.name, member.name[0]):
                return member
        valid = ", ".join(member.name for member in cls)
        raise ParameterApplyError(
            f"Invalid parity {value!r}. Must be one of: {valid}."
        )


class DisplayMode(enum.Enum):
    """How message payloads are rendered for display."""
    ASCII = "ASCII"
    HEX = "HEX"
    HEX_AND_ASCII = "HEX_AND_ASCII"

    @classmethod
    def parse(cls, value: str) -> DisplayMode:
        key = value.strip().upper().replace("-", "_").replace("+", "_AND_")
        try:
            return cls[key]
        except KeyError:
            valid = ", ".join(member.name for member in cls)
            raise ValueError(
                f"Invalid display mode {value!r}. Must be one of: {valid}."
            ) from None


@dataclasses.dataclass(frozen=True)
class LineSettings:
    """Line parameters applied to a port on connect.

    Raises:
        ParameterApplyError: If any value is outside what a UART supports.
    """
    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: Parity = Parity.NONE

    def __post_init__(self) -> None:
        if self.baud_rate <= 0:
            raise ParameterApplyError(
                f"Invalid baud rate {self.baud_rate!r}. "
                f"Baud rate must be a positive integer. "
                f"Common values: 9600, 19200, 38400, 57600, 115200."
            )
        if self.data_bits not in VALID_DATA_BITS:
            valid = ", ".join(str(k) for k in VALID_DATA_BITS)
            raise ParameterApplyError(
                f"Invalid data bits {self.data_bits!r}. Must be one of: {valid}."
            )
        if self.stop_bits not in VALID_STOP_BITS:
            valid = ", ".join(str(k) for k in VALID_STOP_BITS)
            raise ParameterApplyError(
                f"Invalid stop bits {self.stop_bits!r}. Must be one of: {valid}."
            )

    def describe(self) -> str:
        """Short form such as ``9600 8N1``."""
        return f"{self.baud_rate} {self.data_bits}{self.parity.name[0]}{self.stop_bits}"


@dataclasses.dataclass(frozen=True)
class SerialPortEvent:
    """A notification delivered to a port's event listener."""
    event_type: int
    event_value: int
    message: str = ""

    def is_rxchar(self) -> bool:
        return self.event_type == MASK_RXCHAR

    def is_error(self) -> bool:
        return self.event_type == MASK_ERR
