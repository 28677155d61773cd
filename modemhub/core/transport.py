"""
Transport layer abstraction for modem communication.

Provides abstractions for serial communication with dependency injection support.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Union

import serial
from serial import SerialException

from ..exceptions import TransportError, DeviceDisconnectedError

logger = logging.getLogger(__name__)

# Phrases pyserial uses when the device node has gone away
_DISCONNECT_PHRASES = (
    "device disconnected",
    "device reports readiness to read but returned no data",
    "no such device",
    "device not configured",
    "input/output error",
    "port not open",
    "attempting to use a port that is not open",
)


class Transport(ABC):
    """Abstract base class for modem transport."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write data to the transport.

        Args:
            data: Bytes to write

        Returns:
            Number of bytes written

        Raises:
            TransportError: If write fails
        """
        pass

    @abstractmethod
    def read(self, size: int = 256) -> bytes:
        """
        Read whatever bytes are available, up to size.

        Blocks for at most the transport's per-read timeout.

        Args:
            size: Maximum number of bytes to return

        Returns:
            Bytes read, or b"" if nothing arrived before the read timeout

        Raises:
            TransportError: If read fails
        """
        pass

    @abstractmethod
    def reset_input_buffer(self) -> None:
        """Discard pending input."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if transport is open."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the transport."""
        pass


def _translate_serial_error(action: str, port: str, error: SerialException) -> TransportError:
    """Map a pyserial exception to DeviceDisconnectedError or TransportError."""
    error_str = str(error).lower()
    if any(phrase in error_str for phrase in _DISCONNECT_PHRASES):
        logger.error(f"Device {port} disconnected: {error}")
        return DeviceDisconnectedError(
            f"Serial device {port} disconnected: {error}",
            response=str(error)
        )
    logger.error(f"Serial {action} failed on {port}: {error}")
    return TransportError(f"Serial {action} failed on {port}: {error}")


class SerialTransport(Transport):
    """Serial port transport implementation."""

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        read_timeout: float = 0.1
    ) -> None:
        """
        Initialize serial transport.

        Args:
            port: Serial port path (e.g., /dev/ttyUSB2)
            baudrate: Baud rate for serial communication
            read_timeout: Per-read timeout in seconds

        Raises:
            TransportError: If serial port cannot be opened
        """
        self.port = port
        self.baudrate = baudrate
        self.read_timeout = read_timeout

        try:
            self._serial = serial.Serial(
                port=port,
                baudrate=baudrate,
                timeout=read_timeout
            )
            logger.info(f"Opened serial port {port} at {baudrate} baud")
        except (SerialException, OSError, ValueError) as e:
            # ValueError: settings pyserial rejects, e.g. an unsupported baud rate
            logger.error(f"Failed to open serial port {port}: {e}")
            raise TransportError(f"Failed to open serial port {port}: {e}") from e

    def write(self, data: bytes) -> int:
        """Write data to serial port."""
        try:
            written = self._serial.write(data)
            logger.debug(f"Wrote {written} bytes to {self.port}: {data!r}")
            return written
        except SerialException as e:
            raise _translate_serial_error("write", self.port, e) from e

    def read(self, size: int = 256) -> bytes:
        """Read available bytes, waiting up to read_timeout for the first one."""
        try:
            waiting = self._serial.in_waiting
            data = self._serial.read(min(waiting, size) if waiting else 1)
            if data:
                logger.debug(f"Read {len(data)} bytes from {self.port}: {data!r}")
            return data
        except SerialException as e:
            raise _translate_serial_error("read", self.port, e) from e
        except OSError as e:
            raise DeviceDisconnectedError(
                f"Serial device {self.port} disconnected: {e}",
                response=str(e)
            ) from e

    def reset_input_buffer(self) -> None:
        """Clear the serial input buffer."""
        try:
            self._serial.reset_input_buffer()
            logger.debug(f"Reset input buffer on {self.port}")
        except SerialException as e:
            raise _translate_serial_error("flush", self.port, e) from e

    def is_open(self) -> bool:
        """Check if serial port is open."""
        return bool(self._serial and self._serial.is_open)

    def close(self) -> None:
        """Close the serial port."""
        if self._serial and self._serial.is_open:
            self._serial.close()
            logger.info(f"Closed serial port {self.port}")


class MockTransport(Transport):
    """
    Mock transport for testing.

    Simulates modem responses without requiring hardware. Responses queued
    with add_response() are released one per write(), the way a modem only
    answers after it receives a command. Bytes passed to inject() are
    readable immediately, like unsolicited result codes.
    """

    def __init__(self, read_timeout: float = 0.01) -> None:
        """
        Initialize mock transport.

        Args:
            read_timeout: Seconds an empty read blocks before returning b""
        """
        self.read_timeout = read_timeout
        self.written: list[bytes] = []
        self._open = True
        self._pending = bytearray()
        self._response_queue: list[list[str]] = []
        self._lock = threading.Lock()
        logger.info("Initialized MockTransport")

    def add_response(self, lines: list[str]) -> None:
        """
        Queue a response to be released by the next write.

        Args:
            lines: List of response lines (e.g., ["+CSQ: 24,99", "OK"])
        """
        with self._lock:
            self._response_queue.append(list(lines))
            logger.debug(f"Added mock response: {lines}")

    def inject(self, data: Union[bytes, str]) -> None:
        """
        Make unsolicited data readable right away.

        Args:
            data: Raw bytes or text (text is UTF-8 encoded)
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._pending.extend(data)
            logger.debug(f"Injected mock data: {data!r}")

    def write(self, data: bytes) -> int:
        """Record written data and release the next queued response."""
        if not self._open:
            raise DeviceDisconnectedError(
                "MockTransport is closed (simulating device disconnection)",
                response="MockTransport closed"
            )

        with self._lock:
            self.written.append(bytes(data))
            if self._response_queue:
                lines = self._response_queue.pop(0)
                self._pending.extend("".join(f"{line}\r\n" for line in lines).encode("utf-8"))

        logger.debug(f"Mock write: {data!r}")
        return len(data)

    def read(self, size: int = 256) -> bytes:
        """Return pending bytes, or b"" after read_timeout if there are none."""
        if not self._open:
            raise DeviceDisconnectedError(
                "MockTransport is closed (simulating device disconnection)",
                response="MockTransport closed"
            )

        with self._lock:
            if self._pending:
                chunk = bytes(self._pending[:size])
                del self._pending[:size]
                logger.debug(f"Mock read: {chunk!r}")
                return chunk

        time.sleep(self.read_timeout)
        return b""

    def reset_input_buffer(self) -> None:
        """Clear mock input buffer."""
        with self._lock:
            self._pending.clear()
            logger.debug("Reset mock input buffer")

    def is_open(self) -> bool:
        """Check if mock transport is open."""
        return self._open

    def close(self) -> None:
        """Close mock transport."""
        self._open = False
        logger.info("Closed MockTransport")

    def clear_responses(self) -> None:
        """Clear all queued responses (useful for testing)."""
        with self._lock:
            self._response_queue.clear()
            logger.debug("Cleared mock response queue")

    @property
    def commands(self) -> list[str]:
        """Written data decoded as text, one entry per write."""
        with self._lock:
            return [d.decode("utf-8", errors="replace") for d in self.written]
