"""
Data types and structures for modemhub.

Provides type-safe representations of modem data.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class ChannelState(Enum):
    """Lifecycle of one physical connection."""
    OPENING = "opening"
    VERIFYING = "verifying"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    CLOSED = "closed"
    FAILED = "failed"


class ExchangeOutcome(Enum):
    """How a command/response exchange ended."""
    OK = "ok"                      # Success token seen
    ERROR = "error"                # Error token seen
    PROMPT = "prompt"              # Data prompt ("> ") seen
    INCOMPLETE = "incomplete"      # Link ended early, partial answer returned
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


class MessageFormat(IntEnum):
    """SMS message format modes (AT+CMGF)."""
    PDU_MODE = 0
    TEXT_MODE = 1


class SMSStatus(Enum):
    """SMS message status values."""
    REC_UNREAD = "REC UNREAD"      # Received unread
    REC_READ = "REC READ"          # Received read
    STO_UNSENT = "STO UNSENT"      # Stored unsent
    STO_SENT = "STO SENT"          # Stored sent
    ALL = "ALL"                    # All messages

    @classmethod
    def from_pdu_stat(cls, stat: int) -> str:
        """Map a PDU-mode <stat> integer to its text-mode name."""
        mapping = {
            0: cls.REC_UNREAD,
            1: cls.REC_READ,
            2: cls.STO_UNSENT,
            3: cls.STO_SENT,
            4: cls.ALL,
        }
        status = mapping.get(stat)
        return status.value if status else "UNKNOWN"


@dataclass
class CommandExchange:
    """
    One command/response round trip on a channel.

    Ephemeral; kept only as ``CommandChannel.last_exchange`` for diagnostics.
    """
    command: str
    response: str = ""
    elapsed: float = 0.0
    outcome: Optional[ExchangeOutcome] = None

    @property
    def succeeded(self) -> bool:
        """True when the exchange ended on a success token or prompt."""
        return self.outcome in (ExchangeOutcome.OK, ExchangeOutcome.PROMPT)


@dataclass
class SignalQuality:
    """
    Signal quality from AT+CSQ.

    RSSI (Received Signal Strength Indicator):
        0: -113 dBm or less
        1: -111 dBm
        2...30: -109 to -53 dBm
        31: -51 dBm or greater
        99: Not known or not detectable

    Quality (bit error rate):
        0...7: As specified in 3GPP TS 45.008
        99: Not known or not detectable
    """
    rssi: int
    quality: int

    @property
    def rssi_dbm(self) -> Optional[int]:
        """Convert RSSI to dBm value, None outside 0..31."""
        if not self.is_valid:
            return None
        return -113 + (self.rssi * 2)

    @property
    def dbm(self) -> str:
        """dBm as display text, "unknown" when not detectable."""
        if self.rssi_dbm is None:
            return "unknown"
        return f"{self.rssi_dbm} dBm"

    @property
    def is_valid(self) -> bool:
        """Check if signal quality reading is valid."""
        return 0 <= self.rssi <= 31


@dataclass
class ModemIdentity:
    """
    Identity of one modem.

    Every field is optional; a failed sub-query leaves its field None.
    """
    port: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    imei: Optional[str] = None
    imsi: Optional[str] = None
    operator: Optional[str] = None
    phone_number: Optional[str] = None


@dataclass
class SMSFragment:
    """
    One physical SMS as stored on the device.

    Single-part messages have total=1, seq=1, ref=0.
    """
    index: int
    status: str
    sender: str
    timestamp: str
    text: str
    ref: int = 0
    total: int = 1
    seq: int = 1
    pdu: Optional[str] = None       # Raw payload as listed by the device

    @property
    def is_concatenated(self) -> bool:
        """True when this fragment is one part of a longer message."""
        return self.total > 1


@dataclass
class SMSMessage:
    """
    User-facing SMS, reassembled from one or more fragments.

    Reported under the index of its first fragment.
    """
    index: int                      # Message index in storage
    status: str                     # Message status (e.g., "REC READ")
    sender: str                     # Sender phone number
    timestamp: str                  # Timestamp (format: YY/MM/DD,HH:MM:SS+TZ)
    content: str                    # Message text content
    parts: int = 1                  # Number of fragments merged


@dataclass
class PortStatus:
    """A pool entry as seen by callers."""
    identifier: str
    connected: bool
