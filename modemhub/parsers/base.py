"""
Base parser classes and utilities.

Provides reusable parsing functionality for AT command responses.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from ..exceptions import ATParseError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# "+CGSN: 8675..." style prefix some modems put in front of plain values
_PREFIX_RE = re.compile(r"^\+[A-Z]+:\s*")


def split_lines(response: str) -> list[str]:
    """Split raw response text into stripped, non-empty lines."""
    return [line.strip() for line in response.splitlines() if line.strip()]


class ResponseParser(ABC, Generic[T]):
    """
    Abstract base class for response parsers.

    Parsers convert raw AT command responses into typed data structures.
    """

    @abstractmethod
    def parse(self, response: list[str]) -> T:
        """
        Parse AT command response.

        Args:
            response: List of response lines from modem

        Returns:
            Parsed data structure

        Raises:
            ATParseError: If response cannot be parsed
        """
        pass


class FirstValueParser(ResponseParser[str]):
    """
    Parser for single-value responses (manufacturer, model, IMEI, ...).

    Picks the first non-empty line that is not the success token and not an
    echo of the command passed to parse().
    """

    def __init__(self, strip_prefix: bool = True):
        """
        Initialize parser.

        Args:
            strip_prefix: Remove a leading "+XXXX: " from the value
        """
        self.strip_prefix = strip_prefix

    def parse(self, response: list[str], command: Optional[str] = None) -> str:
        """
        Parse first value line.

        Args:
            response: Response lines from modem
            command: Command that was sent; a line repeating it is an echo
        """
        echo = command.strip().upper() if command else None
        for line in response:
            line = line.strip()
            if not line or line == "OK" or line.upper() == echo:
                continue
            if self.strip_prefix:
                line = _PREFIX_RE.sub("", line)
            return line

        raise ATParseError("No value in response", command=command, response="\n".join(response))
