"""Port capability interfaces and the pyserial-backed implementation.

The session core never touches pyserial directly.  It asks a
``PortFactory`` for a ``PortHandle`` by name and talks to the handle through
a small set of methods.  Receive data is *pushed*: a listener registered with
``add_event_listener`` is called with a ``SerialPortEvent`` whenever bytes are
waiting, from a background thread owned by the handle.

Cross-platform: works with COMx names on Windows and /dev/ttyUSB*,
/dev/ttyACM*, /dev/ttyS* paths on Linux.
"""

from __future__ import annotations

import abc
import codecs
import logging
import platform
import threading
from typing import Callable, List, Optional

import serial
import serial.tools.list_ports

from . import ENCODING, SERIAL_POLL_INTERVAL_S, SERIAL_WRITE_TIMEOUT
from .exceptions import (
    ParameterApplyError,
    PortOpenError,
    SerialTalkerError,
    TransportReadError,
    TransportWriteError,
)
from .types import MASK_ERR, MASK_RXCHAR, LineSettings, Parity, SerialPortEvent

logger = logging.getLogger("serial_talker.port")

_IS_WINDOWS = platform.system() == "Windows"

EventListener = Callable[[SerialPortEvent], None]

# Map Parity codes to pyserial constants
_PARITY_MAP = {
    Parity.NONE: serial.PARITY_NONE,
    Parity.ODD: serial.PARITY_ODD,
    Parity.EVEN: serial.PARITY_EVEN,
    Parity.MARK: serial.PARITY_MARK,
    Parity.SPACE: serial.PARITY_SPACE,
}

# Map integer stopbits to pyserial constants
_STOPBITS_MAP = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}

# Map integer bytesize to pyserial constants
_BYTESIZE_MAP = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------


class PortHandle(abc.ABC):
    """One serial port as seen by the session core.

    Every method may raise a ``SerialTalkerError`` subclass on transport
    failure.
    """

    @abc.abstractmethod
    def open_port(self) -> bool:
        """Open the port; ``False`` if it could not be opened."""

    @abc.abstractmethod
    def close_port(self) -> bool:
        """Close the port.  Stops any registered listener first."""

    @abc.abstractmethod
    def set_params(self, baud_rate: int, data_bits: int, stop_bits: int, parity: Parity) -> bool:
        """Apply line settings to the open port."""

    @abc.abstractmethod
    def write_string(self, text: str) -> bool:
        """Encode and transmit *text*."""

    @abc.abstractmethod
    def read_string(self, max_len: Optional[int] = None) -> str:
        """Read up to *max_len* bytes (everything waiting if ``None``) as text.

        While a listener is registered, a multi-byte character split across
        two reads is returned whole by the second read.
        """

    @abc.abstractmethod
    def get_input_buffer_bytes_count(self) -> int:
        """Number of received bytes waiting to be read."""

    @abc.abstractmethod
    def add_event_listener(self, listener: EventListener, mask: int = MASK_RXCHAR) -> None:
        """Subscribe *listener* to the events selected by *mask*."""

    @abc.abstractmethod
    def remove_event_listener(self) -> bool:
        """Unsubscribe the listener.

        Synchronous: once this returns, the listener is not invoked again.
        Returns ``False`` if no listener was registered.
        """

    @abc.abstractmethod
    def is_opened(self) -> bool:
        """Whether the port is currently open."""


class PortFactory(abc.ABC):
    """Creates port handles by name and enumerates the ports available."""

    @abc.abstractmethod
    def create_port(self, port_name: str) -> PortHandle:
        """Return an unopened handle for *port_name*."""

    @abc.abstractmethod
    def list_ports(self) -> List[str]:
        """Names of the ports the platform currently exposes."""


class ErrorReporter(abc.ABC):
    """Receives human-readable error messages."""

    @abc.abstractmethod
    def report_error(self, message: str) -> None:
        ...


class LoggingErrorReporter(ErrorReporter):
    """Error reporter that writes to the ``serial_talker.errors`` logger."""

    def __init__(self) -> None:
        self._logger = logging.getLogger("serial_talker.errors")

    def report_error(self, message: str) -> None:
        self._logger.error("%s", message)


# ---------------------------------------------------------------------------
# pyserial implementation
# ---------------------------------------------------------------------------


def _platform_hint() -> str:
    """Return a platform-specific troubleshooting hint."""
    available = ", ".join(p.device for p in serial.tools.list_ports.comports()) or "(none)"
    if _IS_WINDOWS:
        return (
            "On Windows: verify the COM port number in Device Manager "
            "(Ports → COM & LPT). Ensure no other application (PuTTY, "
            "TeraTerm, Arduino IDE) has the port open. "
            f"Available ports: {available}."
        )
    return (
        "On Linux: verify the device path exists (ls /dev/ttyUSB* /dev/ttyACM* "
        "/dev/ttyS*). Ensure your user is in the 'dialout' group "
        "(sudo usermod -aG dialout $USER) and that no other process "
        "(minicom, screen, picocom) has the port open. "
        f"Available ports: {available}."
    )


def _write_all(ser: serial.Serial, data: bytes, port_name: str) -> int:
    """Write *all* bytes to the serial port and flush the OS transmit buffer.

    Does **not** catch pyserial exceptions; callers wrap them.

    Raises:
        TransportWriteError: If a short write is detected.
    """
    n = ser.write(data)
    if n != len(data):
        raise TransportWriteError(
            f"Short write on {port_name}: wrote {n}/{len(data)} bytes. "
            f"The device may have stopped accepting data."
        )
    ser.flush()
    logger.debug("[PORT-WRITE] Wrote %d bytes to %s", n, port_name)
    return n


class PySerialPort(PortHandle):
    """``PortHandle`` backed by ``serial.Serial``.

    Receive events come from a daemon listener thread that polls
    ``in_waiting`` every *poll_interval_s* seconds and reports the byte count
    as an RX event.  If polling fails (cable unplugged, device removed) the
    thread reports one error event and exits.

    Example::

        port = PySerialPort("/dev/ttyUSB0")
        port.open_port()
        port.set_params(115200, 8, 1, Parity.NONE)
        port.add_event_listener(
            lambda ev: print(port.read_string(ev.event_value)),
            MASK_RXCHAR,
        )
    """

    def __init__(
        self,
        port_name: str,
        encoding: str = ENCODING,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
        poll_interval_s: float = SERIAL_POLL_INTERVAL_S,
    ) -> None:
        self.port_name = port_name
        self.encoding = encoding
        self.write_timeout = write_timeout
        self.poll_interval_s = poll_interval_s
        self._serial: Optional[serial.Serial] = None
        self._listener_thread: Optional[threading.Thread] = None
        self._listener_stop = threading.Event()
        self._listener_lock = threading.Lock()
        # Set while a listener runs; keeps multi-byte characters split across
        # reads intact
        self._rx_decoder: Optional[codecs.IncrementalDecoder] = None

    # ---- Lifecycle ----

    def open_port(self) -> bool:
        if self.is_opened():
            logger.debug("[PORT-OPEN] Port %s is already open; skipping", self.port_name)
            return True
        if not self.port_name:
            logger.error("[PORT-OPEN] No port name given")
            return False

        logger.info("[PORT-OPEN] Opening %s ...", self.port_name)
        ser = serial.Serial()
        ser.port = self.port_name
        ser.timeout = 0
        ser.write_timeout = self.write_timeout
        try:
            ser.open()
        except serial.SerialException as exc:
            msg = f"Failed to open serial port {self.port_name}: {exc}. {_platform_hint()}"
            logger.error("[PORT-OPEN] FAILED: %s", msg)
            raise PortOpenError(msg) from exc
        except OSError as exc:
            msg = f"OS error opening serial port {self.port_name}: {exc}. {_platform_hint()}"
            logger.error("[PORT-OPEN] OS ERROR: %s", msg)
            raise PortOpenError(msg) from exc

        self._serial = ser
        logger.info("[PORT-OPEN] Successfully opened %s", self.port_name)
        return True

    def close_port(self) -> bool:
        self.remove_event_listener()

        ser = self._serial
        if ser is None:
            logger.debug("[PORT-CLOSE] close_port() called on already-closed port %s", self.port_name)
            return True
        try:
            ser.close()
        except (serial.SerialException, OSError) as exc:
            raise SerialTalkerError(f"Error closing port {self.port_name}: {exc}") from exc
        finally:
            self._serial = None
        logger.info("[PORT-CLOSE] Closed %s", self.port_name)
        return True

    def is_opened(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def _require_serial(self, operation: str) -> serial.Serial:
        ser = self._serial
        if ser is None or not ser.is_open:
            raise SerialTalkerError(
                f"Cannot {operation} on serial port {self.port_name}: port is not open."
            )
        return ser

    # ---- Configuration ----

    def set_params(self, baud_rate: int, data_bits: int, stop_bits: int, parity: Parity) -> bool:
        settings = LineSettings(baud_rate, data_bits, stop_bits, Parity(parity))
        try:
            ser = self._require_serial("apply line settings")
        except SerialTalkerError as exc:
            raise ParameterApplyError(str(exc)) from exc

        # pyserial reconfigures the open port on every attribute assignment
        try:
            ser.baudrate = settings.baud_rate
            ser.bytesize = _BYTESIZE_MAP[settings.data_bits]
            ser.stopbits = _STOPBITS_MAP[settings.stop_bits]
            ser.parity = _PARITY_MAP[settings.parity]
        except (serial.SerialException, ValueError, OSError) as exc:
            msg = f"Port {self.port_name} rejected line settings {settings.describe()}: {exc}"
            logger.error("[PORT-PARAMS] %s", msg)
            raise ParameterApplyError(msg) from exc

        logger.info("[PORT-PARAMS] Applied %s on %s", settings.describe(), self.port_name)
        return True

    # ---- I/O ----

    def write_string(self, text: str) -> bool:
        try:
            ser = self._require_serial("write")
        except SerialTalkerError as exc:
            raise TransportWriteError(str(exc)) from exc
        try:
            _write_all(ser, text.encode(self.encoding), self.port_name)
        except serial.SerialException as exc:
            raise TransportWriteError(
                f"Failed to write to serial port {self.port_name}: {exc}. "
                f"The device may have been disconnected."
            ) from exc
        except OSError as exc:
            raise TransportWriteError(
                f"OS error writing to serial port {self.port_name}: {exc}. "
                f"The device may have been physically removed."
            ) from exc
        return True

    def read_string(self, max_len: Optional[int] = None) -> str:
        try:
            ser = self._require_serial("read")
            size = ser.in_waiting if max_len is None else max_len
            data = ser.read(size) if size > 0 else b""
        except SerialTalkerError as exc:
            raise TransportReadError(str(exc)) from exc
        except (serial.SerialException, OSError) as exc:
            raise TransportReadError(
                f"Serial read error on {self.port_name}: {exc}. "
                f"The device may have been disconnected during the read."
            ) from exc
        decoder = self._rx_decoder
        if decoder is not None:
            return decoder.decode(data, False)
        return data.decode(self.encoding, errors="replace")

    def get_input_buffer_bytes_count(self) -> int:
        try:
            return self._require_serial("query input buffer").in_waiting
        except SerialTalkerError as exc:
            raise TransportReadError(str(exc)) from exc
        except (serial.SerialException, OSError) as exc:
            raise TransportReadError(
                f"Error querying input buffer on {self.port_name}: {exc}"
            ) from exc

    # ---- Events ----

    def add_event_listener(self, listener: EventListener, mask: int = MASK_RXCHAR) -> None:
        with self._listener_lock:
            if self._listener_thread is not None:
                raise SerialTalkerError(
                    f"Port {self.port_name} already has an event listener; remove it first."
                )
            ser = self._require_serial("add an event listener")
            stop = threading.Event()
            thread = threading.Thread(
                target=self._listen,
                args=(ser, listener, mask, stop),
                name=f"serial-listener-{self.port_name}",
                daemon=True,
            )
            self._rx_decoder = codecs.getincrementaldecoder(self.encoding)("replace")
            self._listener_stop = stop
            self._listener_thread = thread
        thread.start()
        logger.debug("[PORT-LISTEN] Listener started on %s (mask=0x%02X)", self.port_name, mask)

    def remove_event_listener(self) -> bool:
        with self._listener_lock:
            thread = self._listener_thread
            if thread is None:
                return False
            self._listener_stop.set()
            self._listener_thread = None
            self._rx_decoder = None

        # A listener removing itself cannot join its own thread; the loop
        # exits as soon as the current callback returns.
        if thread is not threading.current_thread():
            thread.join()
        logger.debug("[PORT-LISTEN] Listener stopped on %s", self.port_name)
        return True

    def _listen(
        self,
        ser: serial.Serial,
        listener: EventListener,
        mask: int,
        stop: threading.Event,
    ) -> None:
        while not stop.is_set():
            try:
                waiting = ser.in_waiting
            except (serial.SerialException, OSError) as exc:
                logger.warning("[PORT-LISTEN] Polling %s failed: %s", self.port_name, exc)
                if mask & MASK_ERR and not stop.is_set():
                    self._dispatch(listener, SerialPortEvent(MASK_ERR, 0, str(exc)))
                return

            if waiting > 0 and mask & MASK_RXCHAR:
                self._dispatch(listener, SerialPortEvent(MASK_RXCHAR, waiting))
            stop.wait(self.poll_interval_s)

    def _dispatch(self, listener: EventListener, event: SerialPortEvent) -> None:
        try:
            listener(event)
        except Exception as exc:
            logger.warning(
                "[PORT-LISTEN] Listener raised %s: %s",
                type(exc).__name__, exc,
            )


class PySerialPortFactory(PortFactory):
    """Creates ``PySerialPort`` handles and enumerates ports via pyserial."""

    def __init__(
        self,
        encoding: str = ENCODING,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
        poll_interval_s: float = SERIAL_POLL_INTERVAL_S,
    ) -> None:
        self.encoding = encoding
        self.write_timeout = write_timeout
        self.poll_interval_s = poll_interval_s

    def create_port(self, port_name: str) -> PortHandle:
        return PySerialPort(
            port_name,
            encoding=self.encoding,
            write_timeout=self.write_timeout,
            poll_interval_s=self.poll_interval_s,
        )

    def list_ports(self) -> List[str]:
        return sorted(p.device for p in serial.tools.list_ports.comports())

    @staticmethod
    def describe_ports() -> List[str]:
        """Return ``"<device> — <description>"`` lines for every visible port."""
        descriptions = []
        for p in serial.tools.list_ports.comports():
            descriptions.append(f"{p.device} — {p.description}")
            logger.debug("[PORT-LIST] Found port: %s (%s)", p.device, p.description)
        return descriptions
