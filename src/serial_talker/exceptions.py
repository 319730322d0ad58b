"""Custom exceptions for serial session and negotiation errors."""

from __future__ import annotations

from typing import List, Optional


class SerialTalkerError(Exception):
    """Common base exception for all serial_talker errors."""
    pass


class PortOpenError(SerialTalkerError):
    """Exception for a port that cannot be opened.

    Raised when the port is busy, does not exist, or the user lacks
    permission to open it.
    """
    pass


class ParameterApplyError(SerialTalkerError):
    """Exception for line settings the port or driver rejects."""
    pass


class TransportWriteError(SerialTalkerError):
    """Exception for a write while the cable or device is unavailable."""
    pass


class TransportReadError(SerialTalkerError):
    """Exception for a read error on the receive path."""
    pass


class NotConnectedError(SerialTalkerError):
    """Exception for an operation attempted without an active session."""
    pass


class NegotiationExhaustedError(SerialTalkerError):
    """Exception for a negotiation in which no candidate rate got a response.

    Attributes:
        port_name: The port that was probed, when known.
        tried: The candidate rates that were attempted, in order.
    """

    def __init__(
        self,
        message: str,
        *,
        port_name: Optional[str] = None,
        tried: Optional[List[int]] = None,
    ) -> None:
        super().__init__(message)
        self.port_name = port_name
        self.tried = list(tried) if tried is not None else []
