"""
Core modem infrastructure.

Provides low-level building blocks for modem communication:
- Transport: Serial communication abstraction
- CommandChannel: AT command exchanges and the background listener
- EventBus: Broadcast of raw device output to subscribers
"""

from .transport import Transport, SerialTransport, MockTransport
from .channel import CommandChannel, scan_terminal, CRLF, CTRL_Z
from .events import EventBus, Subscription

__all__ = [
    "Transport",
    "SerialTransport",
    "MockTransport",
    "CommandChannel",
    "scan_terminal",
    "CRLF",
    "CTRL_Z",
    "EventBus",
    "Subscription",
]
