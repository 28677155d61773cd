"""
modemhub - AT command engine for GSM/LTE modems on serial ports.
"""

from .version import __version__
from .session import DeviceSession
from .pool import ConnectionPool
from .core import EventBus, Subscription

from .types import (
    ChannelState,
    MessageFormat,
    SignalQuality,
    ModemIdentity,
    SMSFragment,
    SMSMessage,
    SMSStatus,
    PortStatus,
)

from .exceptions import (
    ModemError,
    TransportError,
    DeviceDisconnectedError,
    ChannelClosedError,
    ATTimeoutError,
    ProtocolError,
    ATCommandError,
    ATParseError,
    PDUError,
    SMSError,
    NotConnectedError,
)

__all__ = [
    "__version__",
    "DeviceSession",
    "ConnectionPool",
    "EventBus",
    "Subscription",
    "ChannelState",
    "MessageFormat",
    "SignalQuality",
    "ModemIdentity",
    "SMSFragment",
    "SMSMessage",
    "SMSStatus",
    "PortStatus",
    "ModemError",
    "TransportError",
    "DeviceDisconnectedError",
    "ChannelClosedError",
    "ATTimeoutError",
    "ProtocolError",
    "ATCommandError",
    "ATParseError",
    "PDUError",
    "SMSError",
    "NotConnectedError",
]
