"""
Modem status response parsers.

Parses responses for signal, operator and own-number commands.
"""

import logging
import re
from typing import Optional

from .base import ResponseParser
from .pdu import decode_ucs2_hex
from ..types import SignalQuality
from ..exceptions import ATParseError

logger = logging.getLogger(__name__)

_CSQ_RE = re.compile(r"\+CSQ:\s*(\d+)\s*,\s*(\d+)")
_QUOTED_RE = re.compile(r'"([^"]+)"')
_CNUM_RE = re.compile(r'\+CNUM:.*,"([^"]+)"')


class SignalQualityParser(ResponseParser[SignalQuality]):
    """Parser for AT+CSQ (signal quality) response."""

    def parse(self, response: list[str]) -> SignalQuality:
        """
        Parse AT+CSQ response.

        Expected format: "+CSQ: 24,99"
        """
        for line in response:
            match = _CSQ_RE.search(line)
            if match:
                return SignalQuality(rssi=int(match.group(1)), quality=int(match.group(2)))

        raise ATParseError(
            "Failed to parse signal quality",
            command="AT+CSQ",
            response="\n".join(response)
        )


class OperatorParser(ResponseParser[Optional[str]]):
    """Parser for AT+COPS? (current operator) response."""

    def __init__(self, ucs2: bool = False):
        """
        Initialize parser.

        Args:
            ucs2: The UCS2 character set is selected, so names arrive hex-encoded
        """
        self.ucs2 = ucs2

    def parse(self, response: list[str]) -> Optional[str]:
        """
        Parse AT+COPS? response.

        Expected format: '+COPS: 0,0,"AT&T",7'
        Returns None if no operator name is present (not registered).
        """
        for line in response:
            match = _QUOTED_RE.search(line)
            if match:
                if self.ucs2:
                    return decode_ucs2_hex(match.group(1))
                return match.group(1)
        return None


class PhoneNumberParser(ResponseParser[Optional[str]]):
    """Parser for AT+CNUM (own number) response."""

    def parse(self, response: list[str]) -> Optional[str]:
        """
        Parse AT+CNUM response.

        Expected format: '+CNUM: "","+1234567890",145'

        With the UCS2 character set selected the number arrives hex-encoded
        and is decoded here.
        """
        for line in response:
            match = _CNUM_RE.search(line)
            if match:
                number = decode_ucs2_hex(match.group(1), pattern=r"\+?[0-9*#]+")
                logger.debug(f"Parsed phone number: {number}")
                return number
        return None
