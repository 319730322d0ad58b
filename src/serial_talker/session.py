"""Serial session management with event-driven receive.

``SerialSessionManager`` owns one port at a time.  It opens and configures
the port, subscribes to its receive events, counts bytes in both directions
and reports everything that happens through four callbacks::

    manager = (
        SerialSessionManager(PySerialPortFactory())
        .on_data_received(lambda text: print(text, end=""))
        .on_error(lambda msg: print(f"error: {msg}"))
        .on_connected(lambda port: print(f"connected to {port}"))
        .on_disconnected(lambda reason: print(reason))
    )
    if manager.connect("/dev/ttyUSB0", 115200, 8, 1, Parity.NONE):
        manager.send_message("AT\\r\\n")

Threading: receive callbacks run on the port's listener thread, not on the
thread that called ``connect``.  All mutable state is guarded by one
re-entrant lock, and callbacks are always invoked with the lock released, so
a callback may call ``is_connected()`` or ``disconnect()`` freely.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

from typeguard import typechecked

from . import SERIAL_DATA_BITS, SERIAL_PARITY, SERIAL_STOP_BITS
from .exceptions import NotConnectedError, SerialTalkerError, TransportWriteError
from .port import ErrorReporter, LoggingErrorReporter, PortFactory, PortHandle
from .types import MASK_ERR, MASK_RXCHAR, LineSettings, Parity, SerialPortEvent, TextCallback

logger = logging.getLogger("serial_talker.session")


def _noop(_: str) -> None:
    pass


@typechecked
class SerialSessionManager:
    """Owns the serial port lifecycle, counters and callbacks.

    States: idle -> connecting (inside ``connect``) -> connected -> idle.
    There is no automatic reconnect; after a failure the caller connects
    again explicitly.
    """

    def __init__(
        self,
        port_factory: PortFactory,
        default_data_bits: int = SERIAL_DATA_BITS,
        default_stop_bits: int = SERIAL_STOP_BITS,
        default_parity: Parity = Parity.parse(SERIAL_PARITY),
        error_reporter: Optional[ErrorReporter] = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            port_factory: Creates port handles by name and lists ports.
            default_data_bits: Used when ``connect`` is called without data bits.
            default_stop_bits: Used when ``connect`` is called without stop bits.
            default_parity: Used when ``connect`` is called without parity.
            error_reporter: Receives error messages until an ``on_error``
                            callback is registered.  Defaults to logging them.
        """
        self.port_factory = port_factory
        self.default_data_bits = default_data_bits
        self.default_stop_bits = default_stop_bits
        self.default_parity = default_parity

        self._lock = threading.RLock()
        self._port: Optional[PortHandle] = None
        self._port_name: Optional[str] = None
        self._settings: Optional[LineSettings] = None
        self._listening = False
        self._connected = False
        self._bytes_sent = 0
        self._bytes_received = 0
        self._connected_at: Optional[float] = None

        self._on_data_received: TextCallback = _noop
        if error_reporter is None:
            error_reporter = LoggingErrorReporter()
        self._on_error: TextCallback = error_reporter.report_error
        self._on_connected: TextCallback = _noop
        self._on_disconnected: TextCallback = _noop

    # ------------------------------------------------------------------
    # Callback registration
    # ------------------------------------------------------------------

    def on_data_received(self, callback: TextCallback) -> SerialSessionManager:
        self._on_data_received = callback
        return self

    def on_error(self, callback: TextCallback) -> SerialSessionManager:
        self._on_error = callback
        return self

    def on_connected(self, callback: TextCallback) -> SerialSessionManager:
        self._on_connected = callback
        return self

    def on_disconnected(self, callback: TextCallback) -> SerialSessionManager:
        self._on_disconnected = callback
        return self

    def _fire(self, name: str, callback: TextCallback, argument: str) -> None:
        """Invoke a callback with the lock released; callback errors are logged."""
        try:
            callback(argument)
        except Exception as exc:
            logger.warning(
                "[SESSION-CALLBACK] %s callback raised %s: %s",
                name, type(exc).__name__, exc,
            )

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    def connect(
        self,
        port_name: str,
        baud_rate: int,
        data_bits: Optional[int] = None,
        stop_bits: Optional[int] = None,
        parity: Optional[Parity] = None,
    ) -> bool:
        """Open *port_name*, apply line settings and start receiving.

        Omitted line parameters fall back to the manager's defaults.  If a
        session is already open it is released first.

        Returns:
            ``True`` on success.  On failure the error callback has been
            invoked exactly once and the manager is idle.
        """
        if self._current_port() is not None:
            logger.info("[SESSION-CONNECT] Releasing %s before opening %s", self._port_name, port_name)
            self._release()

        try:
            settings = LineSettings(
                baud_rate,
                self.default_data_bits if data_bits is None else data_bits,
                self.default_stop_bits if stop_bits is None else stop_bits,
                self.default_parity if parity is None else parity,
            )
        except SerialTalkerError as exc:
            return self._connect_failed(f"Invalid line settings for {port_name}: {exc}")

        logger.info("[SESSION-CONNECT] Connecting to %s at %s ...", port_name, settings.describe())

        port: Optional[PortHandle] = None
        try:
            port = self.port_factory.create_port(port_name)
            if not port.open_port():
                return self._connect_failed(f"Failed to open port: {port_name}")

            if not port.set_params(
                settings.baud_rate, settings.data_bits, settings.stop_bits, settings.parity,
            ):
                self._close_quietly(port)
                return self._connect_failed(
                    f"Failed to apply {settings.describe()} to port: {port_name}"
                )

            with self._lock:
                self._port = port
                self._port_name = port_name
                self._settings = settings
                self._bytes_sent = 0
                self._bytes_received = 0
                self._connected_at = time.monotonic()
                self._connected = True

            port.add_event_listener(self._handle_port_event, MASK_RXCHAR | MASK_ERR)
            with self._lock:
                still_current = self._port is port
                if still_current:
                    self._listening = True
            if not still_current:
                # disconnect() ran on another thread while subscribing
                self._close_quietly(port)
                return self._connect_failed(f"Connection to {port_name} closed while connecting")
        except SerialTalkerError as exc:
            with self._lock:
                if self._port is port:
                    self._clear_state()
            if port is not None:
                self._close_quietly(port)
            return self._connect_failed(f"Error opening port {port_name}: {exc}")

        logger.info("[SESSION-CONNECT] Connected to %s at %s", port_name, settings.describe())
        self._fire("connected", self._on_connected, port_name)
        return True

    def connect_with_settings(self, port_name: str, settings: LineSettings) -> bool:
        return self.connect(
            port_name, settings.baud_rate, settings.data_bits, settings.stop_bits, settings.parity,
        )

    def _connect_failed(self, message: str) -> bool:
        logger.error("[SESSION-CONNECT] FAILED: %s", message)
        self._fire("error", self._on_error, message)
        return False

    def disconnect(self, reason: str = "Disconnected") -> None:
        """Stop receiving, close the port and fire the disconnected callback.

        Safe to call in any state, any number of times.  Never raises.
        """
        if self._release():
            logger.info("[SESSION-DISCONNECT] %s", reason)
        else:
            logger.debug("[SESSION-DISCONNECT] No open session (%s)", reason)
        self._fire("disconnected", self._on_disconnected, reason)

    def _release(self) -> bool:
        """Tear down the current session; ``False`` if there was none.

        The listener is removed before the port is closed so no receive
        callback ever sees a half-closed handle.
        """
        with self._lock:
            port = self._port
            listening = self._listening
            port_name = self._port_name
            self._clear_state()

        if port is None:
            return False

        # Lock released: the listener thread may be waiting on it
        if listening:
            try:
                port.remove_event_listener()
            except Exception as exc:
                logger.warning("[SESSION-DISCONNECT] Error removing listener on %s: %s", port_name, exc)
        self._close_quietly(port)
        return True

    def _clear_state(self) -> None:
        self._port = None
        self._port_name = None
        self._settings = None
        self._listening = False
        self._connected = False
        self._connected_at = None

    def _close_quietly(self, port: PortHandle) -> None:
        try:
            port.close_port()
        except Exception as exc:
            logger.warning("[SESSION-CLOSE] Error closing port: %s", exc)

    def _current_port(self) -> Optional[PortHandle]:
        with self._lock:
            return self._port

    # ------------------------------------------------------------------
    # Send / receive
    # ------------------------------------------------------------------

    def send_message(self, text: str) -> None:
        """Transmit *text* and add its length to the bytes-sent counter.

        Raises:
            NotConnectedError: If no session is open.
            TransportWriteError: If the port rejects the write.
        """
        with self._lock:
            port = self._port if self._connected else None
            port_name = self._port_name
        if port is None:
            raise NotConnectedError("Not connected to any port")

        try:
            written = port.write_string(text)
        except TransportWriteError:
            raise
        except SerialTalkerError as exc:
            raise TransportWriteError(f"Failed to write to {port_name}: {exc}") from exc
        if not written:
            raise TransportWriteError(f"Port {port_name} did not accept {len(text)} characters")

        with self._lock:
            if self._port is port:
                self._bytes_sent += len(text)
        logger.debug("[SESSION-SEND] %d characters to %s", len(text), port_name)

    def _handle_port_event(self, event: SerialPortEvent) -> None:
        """Listener-thread entry point for port events."""
        with self._lock:
            port = self._port
            port_name = self._port_name
        if port is None:
            return

        if event.is_error():
            message = f"Connection to {port_name} lost: {event.message}"
            logger.error("[SESSION-RECEIVE] %s", message)
            self._fire("error", self._on_error, message)
            if self._current_port() is port:
                self.disconnect("Connection lost")
            return

        if not event.is_rxchar() or event.event_value <= 0:
            return

        try:
            text = port.read_string(event.event_value)
        except SerialTalkerError as exc:
            self._fire("error", self._on_error, f"Error reading from port: {exc}")
            return

        with self._lock:
            if self._port is not port:
                return
            self._bytes_received += len(text)
        if not text:
            return
        self._fire("data_received", self._on_data_received, text)

    # ------------------------------------------------------------------
    # State and metrics
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def get_bytes_sent(self) -> int:
        with self._lock:
            return self._bytes_sent

    def get_bytes_received(self) -> int:
        with self._lock:
            return self._bytes_received

    def get_uptime_seconds(self) -> int:
        """Whole seconds since the last successful connect; 0 when idle."""
        with self._lock:
            if not self._connected or self._connected_at is None:
                return 0
            return int(time.monotonic() - self._connected_at)

    @property
    def port_name(self) -> Optional[str]:
        with self._lock:
            return self._port_name

    def get_line_settings(self) -> Optional[LineSettings]:
        with self._lock:
            return self._settings

    def list_ports(self) -> List[str]:
        return self.port_factory.list_ports()

    # ---- Context manager ----

    def __enter__(self) -> SerialSessionManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Context manager exit; ensures the port is closed."""
        if self.is_connected():
            self.disconnect()
