"""
DeviceSession class.

User-facing API for one modem that coordinates the command channel and
the feature managers.
"""

import logging
from typing import Callable, Optional

from .core import CommandChannel, EventBus, SerialTransport, Transport
from .core.channel import DEFAULT_COMMAND_TIMEOUT
from .exceptions import ModemError
from .features import DeviceManager, NetworkManager, SMSManager
from .features.sms import DEFAULT_SMS_TIMEOUT
from .types import ChannelState, MessageFormat, ModemIdentity, SignalQuality, SMSMessage

logger = logging.getLogger(__name__)


class DeviceSession:
    """
    Session with one modem.

    Provides a high-level API through feature managers:

    - device: Identity queries
    - network: Signal quality and operator
    - sms: SMS list/send/delete

    Example usage with context manager:

    .. code-block:: python

        with DeviceSession(port="/dev/ttyUSB2") as session:
            identity = session.get_identity()
            print(f"{identity.manufacturer} {identity.model}")

            signal = session.get_signal()
            print(f"Signal: {signal.dbm}")

    Example usage with manual lifecycle management:

    .. code-block:: python

        session = DeviceSession(port="/dev/ttyUSB2")
        session.connect()
        session.start()
        # ... use session ...
        session.close()
    """

    def __init__(
        self,
        port: Optional[str] = None,
        transport: Optional[Transport] = None,
        event_bus: Optional[EventBus] = None,
        transport_factory: Optional[Callable[[str], Transport]] = None,
        baudrate: int = 115200,
        read_timeout: float = 0.1,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        verify_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        sms_timeout: float = DEFAULT_SMS_TIMEOUT,
        sms_mode: MessageFormat = MessageFormat.PDU_MODE,
        auto_start: bool = False
    ) -> None:
        """
        Initialize DeviceSession. No I/O happens until connect().

        Args:
            port: Serial port path (e.g., "/dev/ttyUSB2"). Either port or transport required.
            transport: Already-open transport (for testing). Overrides port if provided.
            event_bus: Bus receiving the listener's raw output (optional)
            transport_factory: Callable opening a transport for a port path
                (default: SerialTransport)
            baudrate: Serial port baud rate (default: 115200)
            read_timeout: Per-read timeout in seconds (default: 0.1)
            command_timeout: AT command timeout in seconds (default: 1.0)
            verify_timeout: Liveness check timeout in seconds (default: 1.0)
            sms_timeout: SMS submission timeout in seconds (default: 60)
            sms_mode: PDU_MODE (default) or TEXT_MODE with UCS2 character set
            auto_start: Connect and start the listener immediately

        Raises:
            ValueError: If neither port nor transport is provided

        Example:

        .. code-block:: python

            # Using serial port
            session = DeviceSession(port="/dev/ttyUSB2", auto_start=True)

            # Using custom transport (for testing)
            from modemhub.core import MockTransport
            session = DeviceSession(transport=MockTransport())
        """
        if transport is None and port is None:
            raise ValueError("Either 'port' or 'transport' must be provided")

        self.port = port if port is not None else "mock"
        self.verify_timeout = verify_timeout

        if transport is not None:
            opener = lambda: transport
        elif transport_factory is not None:
            opener = lambda: transport_factory(port)
        else:
            opener = lambda: SerialTransport(port=port, baudrate=baudrate, read_timeout=read_timeout)

        self._channel = CommandChannel(
            identifier=self.port,
            opener=opener,
            event_bus=event_bus,
            command_timeout=command_timeout
        )

        self.device = DeviceManager(self._channel)
        self.network = NetworkManager(self._channel, ucs2=sms_mode == MessageFormat.TEXT_MODE)
        self.sms = SMSManager(self._channel, mode=sms_mode, sms_timeout=sms_timeout)

        logger.info(f"Initialized DeviceSession for {self.port}")

        if auto_start:
            self.connect()
            self.start()

    @property
    def channel(self) -> CommandChannel:
        """Underlying command channel."""
        return self._channel

    @property
    def state(self) -> ChannelState:
        """Lifecycle state of the underlying channel."""
        return self._channel.state

    def connect(self) -> None:
        """
        Open the link, verify the modem answers and run setup commands.

        Raises:
            TransportError: If the link cannot be opened
            ModemError: If the modem does not answer the liveness check
        """
        self._channel.open(verify_timeout=self.verify_timeout)
        self._channel.initialize(self.sms.setup_commands())
        logger.info(f"Session {self.port} connected")

    def start(self) -> None:
        """Start the background listener."""
        self._channel.start()
        logger.info(f"Session {self.port} started")

    def close(self) -> None:
        """
        Close the session.

        Stops the listener and releases the link.
        """
        self._channel.close()
        logger.info(f"Session {self.port} closed")

    def get_identity(self) -> ModemIdentity:
        """
        Query every identity field independently.

        A failing query leaves its field None.

        Returns:
            ModemIdentity
        """
        identity = ModemIdentity(port=self.port)
        queries = {
            "manufacturer": self.device.get_manufacturer,
            "model": self.device.get_model,
            "imei": self.device.get_imei,
            "imsi": self.device.get_imsi,
            "operator": self.network.get_operator,
            "phone_number": self.device.get_phone_number,
        }

        for field, query in queries.items():
            try:
                setattr(identity, field, query())
            except ModemError as e:
                logger.warning(f"Identity query for {field} failed on {self.port}: {e}")

        return identity

    def get_signal(self) -> SignalQuality:
        """
        Get signal quality.

        Raises:
            ATParseError: If the response cannot be parsed
        """
        return self.network.get_signal_quality()

    def list_sms(self) -> list[SMSMessage]:
        """List stored SMS with concatenated parts merged, ordered by index."""
        return self.sms.list_messages()

    def send_sms(self, number: str, text: str) -> list[int]:
        """
        Send an SMS, in several parts if needed.

        Returns:
            Message reference numbers, one per part
        """
        return self.sms.send_sms(number, text)

    def delete_sms(self, index: int) -> None:
        """Delete the SMS stored at index."""
        self.sms.delete_message(index)

    def send_raw_command(self, text: str, timeout: Optional[float] = None) -> str:
        """
        Send a raw AT command.

        For commands not covered by the feature managers. An error token in
        the reply is returned as text rather than raised.

        Args:
            text: AT command (e.g., "AT+CREG?")
            timeout: Command timeout in seconds (uses default if None)

        Returns:
            Response text

        Raises:
            ATTimeoutError: If command times out

        Example:

        .. code-block:: python

            response = session.send_raw_command("AT+CREG?")
            print(response)
        """
        return self._channel.send_command(text, timeout=timeout, check=False)

    def __enter__(self):
        """
        Context manager entry.

        Connects and starts the listener if that has not happened yet.
        """
        if self.state == ChannelState.OPENING:
            self.connect()
        if not self._channel.is_listening():
            self.start()
        return self

    def __exit__(self, *exc):
        """
        Context manager exit.

        Automatically closes the session.
        """
        self.close()

    def __repr__(self) -> str:
        """String representation of session."""
        return f"<DeviceSession port={self.port} state={self.state.value}>"
