"""
SMS manager.

Handles SMS messaging operations (list, send, delete).
Supports both PDU mode and text mode with the UCS2 character set.
"""

import logging
import random
import threading
from typing import TYPE_CHECKING, Optional

from ..types import MessageFormat, SMSFragment, SMSMessage
from ..parsers.base import split_lines
from ..parsers.sms import SMSParser, reassemble
from ..parsers.pdu import (
    encode_sms_submit,
    encode_ucs2_hex,
    is_gsm7_encodable,
    split_message,
)
from ..core.channel import CTRL_Z
from ..exceptions import ATParseError, PDUError, ProtocolError, ATTimeoutError, SMSError

if TYPE_CHECKING:
    from ..core import CommandChannel

logger = logging.getLogger(__name__)

DEFAULT_SMS_TIMEOUT = 60.0

# First octet for AT+CSMP: SMS-SUBMIT with relative validity, with and without UDHI
_CSMP_PLAIN = "AT+CSMP=17,167,0,8"
_CSMP_WITH_HEADER = "AT+CSMP=81,167,0,8"


class SMSManager:
    """
    Manages SMS messaging operations.

    Features:
    - List messages with concatenated parts merged
    - Send SMS (PDU and text modes), splitting long text into parts
    - Delete messages
    - Automatic encoding detection
    """

    def __init__(
        self,
        channel: "CommandChannel",
        mode: MessageFormat = MessageFormat.PDU_MODE,
        sms_timeout: float = DEFAULT_SMS_TIMEOUT
    ) -> None:
        """
        Initialize SMS manager.

        Args:
            channel: CommandChannel used for AT command execution
            mode: Message format the channel is set up for
            sms_timeout: Seconds to wait for the network to accept a submission
        """
        self.channel = channel
        self.mode = mode
        self.sms_timeout = sms_timeout
        self._sms_parser = SMSParser()

        # Concatenation reference shared by the parts of one message
        self._ref_lock = threading.Lock()
        self._next_ref = random.randrange(256)

        logger.debug(f"Initialized SMSManager ({mode.name})")

    def setup_commands(self) -> list[str]:
        """
        Commands that put the modem in the state this manager expects.

        Returns:
            Echo-off plus the message format (and character set in text mode)
        """
        if self.mode == MessageFormat.TEXT_MODE:
            return ["ATE0", "AT+CMGF=1", 'AT+CSCS="UCS2"', _CSMP_PLAIN]
        return ["ATE0", "AT+CMGF=0"]

    def _new_reference(self) -> int:
        with self._ref_lock:
            ref = self._next_ref
            self._next_ref = (self._next_ref + 1) % 256
        return ref

    def list_fragments(self) -> list[SMSFragment]:
        """
        List every stored SMS as the device reports it.

        Returns:
            Fragments in listing order, concatenated parts not merged

        Raises:
            SMSError: If the listing command fails
        """
        if self.mode == MessageFormat.TEXT_MODE:
            cmd = 'AT+CMGL="ALL"'
        else:
            cmd = "AT+CMGL=4"

        logger.info("Listing messages")
        try:
            response = self.channel.send_command(cmd)
        except (ProtocolError, ATTimeoutError) as e:
            raise SMSError(f"Failed to list messages: {e}", command=cmd) from e

        lines = split_lines(response)
        if self.mode == MessageFormat.TEXT_MODE:
            return self._sms_parser.parse_cmgl_text(lines)
        return self._sms_parser.parse_cmgl_pdu(lines)

    def list_messages(self) -> list[SMSMessage]:
        """
        List all stored messages.

        Concatenated parts present in the same listing are merged; a
        fragment that cannot be decoded shows its raw payload as text.

        Returns:
            List of SMSMessage objects ordered by index

        Example:

        .. code-block:: python

            for msg in session.sms.list_messages():
                print(f"{msg.index} {msg.sender}: {msg.content}")
        """
        messages = reassemble(self.list_fragments())
        logger.info(f"Found {len(messages)} message(s)")
        return messages

    def send_sms(self, number: str, message: str, request_status: bool = False) -> list[int]:
        """
        Send an SMS message.

        Text that does not fit one SMS is sent as several parts that carry
        a shared concatenation reference. Each part is submitted with the
        link held, so the prompt and payload are never interleaved.

        Args:
            number: Recipient phone number (with or without +)
            message: Message text
            request_status: Request delivery status report (PDU mode only)

        Returns:
            Message reference numbers, one per part

        Raises:
            SMSError: If any part fails

        Example:

        .. code-block:: python

            refs = session.sms.send_sms("+1234567890", "Hello!")

            # Unicode is detected automatically
            refs = session.sms.send_sms("+1234567890", "Hello 世界!")
        """
        logger.info(f"Sending SMS to {number}")

        encoding = "gsm7" if is_gsm7_encodable(message) else "ucs2"
        if self.mode == MessageFormat.TEXT_MODE:
            # The UCS2 character set carries every message as UTF-16
            encoding = "ucs2"

        parts = split_message(message, encoding)
        ref = self._new_reference() if len(parts) > 1 else None
        logger.debug(f"Message will be sent as {len(parts)} {encoding} part(s)")

        refs = []
        try:
            if self.mode == MessageFormat.TEXT_MODE and ref is not None:
                self.channel.send_command(_CSMP_WITH_HEADER)
            for seq, text in enumerate(parts, start=1):
                concat = (ref, len(parts), seq) if ref is not None else None
                if self.mode == MessageFormat.TEXT_MODE:
                    refs.append(self._submit_text(number, text, concat))
                else:
                    refs.append(self._submit_pdu(number, text, encoding, concat, request_status))
        except PDUError as e:
            raise SMSError(f"PDU encoding failed: {e}") from e
        except (ProtocolError, ATTimeoutError) as e:
            raise SMSError(
                f"SMS send failed after {len(refs)} of {len(parts)} part(s): {e}",
                command=e.command,
                response=e.response
            ) from e
        finally:
            if self.mode == MessageFormat.TEXT_MODE and ref is not None:
                self._restore_csmp()

        logger.info(f"SMS sent to {number}, reference(s): {refs}")
        return refs

    def _submit_pdu(
        self,
        number: str,
        text: str,
        encoding: str,
        concat: Optional[tuple[int, int, int]],
        request_status: bool
    ) -> int:
        submit = encode_sms_submit(
            number=number,
            text=text,
            encoding=encoding,
            concat=concat,
            request_status=request_status
        )
        return self._submit(f"AT+CMGS={submit.tpdu_length}", submit.pdu)

    def _submit_text(self, number: str, text: str, concat: Optional[tuple[int, int, int]]) -> int:
        cmd = f'AT+CMGS="{encode_ucs2_hex(number)}"'
        return self._submit(cmd, encode_ucs2_hex(text, concat))

    def _submit(self, cmd: str, payload: str) -> int:
        """Run one AT+CMGS prompt/payload exchange and return its reference."""
        with self.channel.exclusive():
            prompt = self.channel.send_command(cmd)
            if ">" not in prompt:
                raise SMSError("Did not receive SMS prompt", command=cmd, response=prompt)
            response = self.channel.send_command(payload, suffix=CTRL_Z, timeout=self.sms_timeout)

        lines = split_lines(response)
        try:
            return self._sms_parser.parse_cmgs(lines)
        except ATParseError:
            # Accepted without a reference
            if "OK" in lines:
                logger.warning(f"SMS accepted but no reference in {response!r}")
                return -1
            raise

    def _restore_csmp(self) -> None:
        try:
            self.channel.send_command(_CSMP_PLAIN)
        except (ProtocolError, ATTimeoutError) as e:
            logger.warning(f"Could not restore SMS parameters: {e}")

    def delete_message(self, index: int) -> None:
        """
        Delete SMS message by index.

        Args:
            index: Message index to delete

        Raises:
            SMSError: If the device does not confirm the deletion

        Example:

        .. code-block:: python

            session.sms.delete_message(5)
        """
        logger.info(f"Deleting message at index {index}")

        cmd = f"AT+CMGD={index}"
        try:
            response = self.channel.send_command(cmd)
        except (ProtocolError, ATTimeoutError) as e:
            raise SMSError(f"Failed to delete message {index}: {e}", command=cmd) from e

        if "OK" not in split_lines(response):
            raise SMSError(f"Deletion of message {index} not confirmed", command=cmd, response=response)

        logger.info(f"Deleted message {index}")
