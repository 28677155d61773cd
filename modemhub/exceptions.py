"""
Exceptions for modemhub.

Provides detailed error information for debugging modem communication issues.
"""

from typing import Optional


class ModemError(Exception):
    """
    Base exception for modem errors.

    All modemhub exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        response: Optional[str] = None
    ) -> None:
        """
        Initialize exception with context.

        Args:
            message: Error description
            command: AT command that caused the error (if applicable)
            response: Raw modem response (if applicable)
        """
        self.command = command
        self.response = response
        super().__init__(message)

    def __str__(self) -> str:
        """Format error message with context."""
        parts = [super().__str__()]

        if self.command:
            parts.append(f"Command: {self.command}")

        if self.response:
            parts.append(f"Response: {self.response!r}")

        return " | ".join(parts)


class TransportError(ModemError):
    """
    Raised when the transport layer fails.

    This indicates:
    - Serial port cannot be opened
    - Read or write failure
    - Hardware communication failure

    Fatal to the session that owns the link.
    """
    pass


class DeviceDisconnectedError(TransportError):
    """
    Raised when the device is gone from the host during operation.
    """
    pass


class ChannelClosedError(TransportError):
    """
    Raised when a command is issued on a channel that is closed or failed.
    """
    pass


class ATTimeoutError(ModemError):
    """
    Raised when no terminal token arrives before the command deadline.

    This typically indicates:
    - Modem is not responding
    - Command takes longer than timeout

    Recoverable: only the calling command fails. Any partial response
    read before the deadline is attached.
    """
    pass


class ProtocolError(ModemError):
    """
    Raised when the modem reply signals a failure or makes no sense.
    """
    pass


class ATCommandError(ProtocolError):
    """
    Raised when the response contains an error token.

    ``ERROR``, ``+CME ERROR: <n>`` and ``+CMS ERROR: <n>`` all count.
    """
    pass


class ATParseError(ProtocolError):
    """
    Raised when an AT command response cannot be parsed.

    This indicates:
    - Unexpected response format
    - Missing expected fields
    - Invalid data in response
    """
    pass


class PDUError(ModemError):
    """
    Raised when PDU or hex payload encoding/decoding fails.

    Listing code catches this per fragment and keeps going.
    """
    pass


class SMSError(ModemError):
    """
    Raised when SMS operations fail.

    This indicates:
    - SMS send failure
    - Invalid message index
    - Listing could not be retrieved
    """
    pass


class NotConnectedError(ModemError):
    """
    Raised when a device identifier is not in the connection pool.
    """
    pass
