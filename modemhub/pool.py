"""
Connection pool.

Discovers modems attached to the host, owns their sessions and looks
them up by port path.
"""

import glob
import logging
import threading
from typing import Callable, Optional, Sequence

from .core import EventBus, Transport
from .exceptions import ModemError, NotConnectedError
from .session import DeviceSession
from .types import ChannelState, PortStatus

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS = ("/dev/ttyUSB*", "/dev/ttyACM*")


class ConnectionPool:
    """
    Registry of open device sessions keyed by port path.

    Sessions are created by scan() and closed by close(); nothing else
    adds or removes them. A session whose link has died stays registered.

    .. code-block:: python

        bus = EventBus()
        pool = ConnectionPool(bus)
        pool.scan()
        for status in pool.list():
            print(status.identifier, status.connected)
        session = pool.get("/dev/ttyUSB2")
    """

    def __init__(
        self,
        event_bus: EventBus,
        baudrate: int = 115200,
        patterns: Sequence[str] = DEFAULT_PATTERNS,
        transport_factory: Optional[Callable[[str], Transport]] = None,
        port_finder: Optional[Callable[[], list[str]]] = None,
        **session_options
    ) -> None:
        """
        Initialize connection pool.

        Args:
            event_bus: Bus that every session's listener broadcasts to
            baudrate: Serial baud rate for new sessions
            patterns: Glob patterns of candidate device paths
            transport_factory: Callable opening a transport for a path
                (default: SerialTransport)
            port_finder: Callable returning candidate paths (default: glob over patterns)
            **session_options: Extra DeviceSession keyword arguments
                (command_timeout, verify_timeout, sms_mode, ...)
        """
        self.event_bus = event_bus
        self.baudrate = baudrate
        self.patterns = tuple(patterns)
        self._transport_factory = transport_factory
        self._port_finder = port_finder or self._find_ports
        self._session_options = session_options

        self._sessions: dict[str, DeviceSession] = {}
        self._lock = threading.Lock()

        logger.debug(f"Initialized ConnectionPool (patterns={self.patterns})")

    def _find_ports(self) -> list[str]:
        ports = []
        for pattern in self.patterns:
            ports.extend(sorted(glob.glob(pattern)))
        return ports

    def scan(self) -> list[str]:
        """
        Open a session on every candidate path not yet registered.

        Paths that fail to open or verify are skipped and retried on the
        next scan. Registered sessions are left untouched.

        Returns:
            Identifiers registered by this scan
        """
        candidates = self._port_finder()
        logger.debug(f"Scan candidates: {candidates}")
        added = []

        with self._lock:
            for path in candidates:
                if path in self._sessions:
                    continue

                session = DeviceSession(
                    port=path,
                    event_bus=self.event_bus,
                    transport_factory=self._transport_factory,
                    baudrate=self.baudrate,
                    **self._session_options
                )
                try:
                    session.connect()
                    session.start()
                except ModemError as e:
                    logger.warning(f"Skipping {path}: {e}")
                    session.close()
                    continue

                self._sessions[path] = session
                added.append(path)
                logger.info(f"Registered modem on {path}")

        logger.info(f"Scan complete: {len(added)} new, {len(self._sessions)} total")
        return added

    def get(self, identifier: str) -> DeviceSession:
        """
        Look up a registered session.

        Raises:
            NotConnectedError: If no session is registered under identifier
        """
        with self._lock:
            session = self._sessions.get(identifier)
        if session is None:
            raise NotConnectedError(f"Device {identifier} is not connected")
        return session

    def list(self) -> list[PortStatus]:
        """
        Registered sessions in identifier order.

        ``connected`` is True only for sessions whose listener is running.
        """
        with self._lock:
            sessions = sorted(self._sessions.items())
        return [
            PortStatus(identifier=identifier, connected=session.state == ChannelState.ACTIVE)
            for identifier, session in sessions
        ]

    def close(self) -> None:
        """Close every session and empty the registry."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            session.close()
        logger.info(f"Connection pool closed ({len(sessions)} session(s))")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._sessions
