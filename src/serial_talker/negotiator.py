"""Automatic baud rate discovery by probing candidate rates.

For each candidate rate, in a fixed order, the negotiator applies the rate to
an already-open port, sends an ``AT`` probe, waits a fixed settle interval and
checks whether anything came back.  The first rate that produces a non-empty
response wins.  Any response counts; the content is not inspected.

Blocking: each attempt sleeps for the settle interval, so probing all ten
default candidates takes about five seconds.  Never call this from a thread
that must stay responsive.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from typeguard import typechecked

from . import (
    NEGOTIATION_BAUD_RATES,
    NEGOTIATION_NOT_FOUND,
    NEGOTIATION_PROBE,
    NEGOTIATION_SETTLE_MS,
)
from .exceptions import NegotiationExhaustedError, SerialTalkerError
from .port import PortHandle
from .types import Parity

logger = logging.getLogger("serial_talker.negotiator")

NOT_FOUND = NEGOTIATION_NOT_FOUND


@typechecked
class BaudRateNegotiator:
    """Finds a working baud rate on an open port.

    Example::

        port = PySerialPort("/dev/ttyUSB0")
        port.open_port()
        rate = BaudRateNegotiator().negotiate(port, 8, 1, Parity.NONE)
        if rate == NOT_FOUND:
            rate = 9600
    """

    def __init__(
        self,
        candidates: Sequence[int] = tuple(NEGOTIATION_BAUD_RATES),
        probe: str = NEGOTIATION_PROBE,
        settle_ms: int = NEGOTIATION_SETTLE_MS,
    ) -> None:
        """Initialize the negotiator.

        Args:
            candidates: Rates to try, in order.  Ties are broken by this
                        order, never by numeric value.
            probe: Text written at each candidate rate to elicit a response.
            settle_ms: How long to wait after the probe before checking for
                       a response.
        """
        if settle_ms < 0:
            raise ValueError(f"settle_ms must not be negative, got {settle_ms}")
        self.candidates: List[int] = list(candidates)
        self.probe = probe
        self.settle_ms = settle_ms

    def negotiate(
        self,
        port: PortHandle,
        data_bits: int,
        stop_bits: int,
        parity: Parity,
    ) -> int:
        """Return the first candidate rate that gets a response, or ``NOT_FOUND``.

        A transport failure at one candidate skips that candidate; it never
        aborts the negotiation.
        """
        logger.info(
            "[NEGOTIATE] Probing %d candidate rates (%d%s%d, settle=%d ms) ...",
            len(self.candidates), data_bits, parity.name[0], stop_bits, self.settle_ms,
        )
        start = time.monotonic()

        for baud_rate in self.candidates:
            if self._try_baud_rate(port, baud_rate, data_bits, stop_bits, parity):
                logger.info(
                    "[NEGOTIATE] Device answered at %d baud (%.2fs)",
                    baud_rate, time.monotonic() - start,
                )
                return baud_rate

        logger.warning(
            "[NEGOTIATE] No response at any of %d candidate rates (%.2fs)",
            len(self.candidates), time.monotonic() - start,
        )
        return NOT_FOUND

    def _try_baud_rate(
        self,
        port: PortHandle,
        baud_rate: int,
        data_bits: int,
        stop_bits: int,
        parity: Parity,
    ) -> bool:
        try:
            port.set_params(baud_rate, data_bits, stop_bits, parity)
            port.write_string(self.probe)

            if self.settle_ms > 0:
                time.sleep(self.settle_ms / 1000.0)

            if port.get_input_buffer_bytes_count() > 0:
                response = port.read_string()
                if response:
                    logger.debug("[NEGOTIATE] %d baud -> %r", baud_rate, response[:80])
                    return True
        except SerialTalkerError as exc:
            logger.debug("[NEGOTIATE] %d baud skipped: %s", baud_rate, exc)
            return False

        logger.debug("[NEGOTIATE] %d baud: no response", baud_rate)
        return False


def negotiate(
    port: PortHandle,
    data_bits: int,
    stop_bits: int,
    parity: Parity,
    settle_ms: int = NEGOTIATION_SETTLE_MS,
) -> int:
    """Probe the default candidate rates; see ``BaudRateNegotiator.negotiate``."""
    return BaudRateNegotiator(settle_ms=settle_ms).negotiate(port, data_bits, stop_bits, parity)


def require_baud_rate(
    port: PortHandle,
    data_bits: int,
    stop_bits: int,
    parity: Parity,
    negotiator: Optional[BaudRateNegotiator] = None,
    port_name: Optional[str] = None,
) -> int:
    """Like ``negotiate`` but raise instead of returning ``NOT_FOUND``.

    Raises:
        NegotiationExhaustedError: If no candidate produced a response.
    """
    negotiator = negotiator or BaudRateNegotiator()
    baud_rate = negotiator.negotiate(port, data_bits, stop_bits, parity)
    if baud_rate == NOT_FOUND:
        where = f" on {port_name}" if port_name else ""
        raise NegotiationExhaustedError(
            f"Baud rate negotiation failed{where}: no response to "
            f"{negotiator.probe!r} at any of {negotiator.candidates}. "
            f"Check that the device is powered, that TX/RX are not swapped, "
            f"and that it answers AT commands.",
            port_name=port_name,
            tried=negotiator.candidates,
        )
    return baud_rate
