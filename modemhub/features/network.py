"""
Network manager.

Handles signal quality and operator queries.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..types import SignalQuality
from ..parsers.base import split_lines
from ..parsers.modem import SignalQualityParser, OperatorParser

if TYPE_CHECKING:
    from ..core import CommandChannel

logger = logging.getLogger(__name__)


class NetworkManager:
    """
    Manages network status queries.
    """

    def __init__(self, channel: "CommandChannel", ucs2: bool = False) -> None:
        """
        Initialize network manager.

        Args:
            channel: CommandChannel used for AT command execution
            ucs2: The channel uses the UCS2 character set (SMS text mode)
        """
        self.channel = channel

        # Parsers
        self._signal_parser = SignalQualityParser()
        self._operator_parser = OperatorParser(ucs2=ucs2)

        logger.debug("Initialized NetworkManager")

    def get_signal_quality(self) -> SignalQuality:
        """
        Get signal quality.

        Returns:
            SignalQuality with RSSI and quality values

        Raises:
            ATParseError: If the response carries no +CSQ line

        Example:

        .. code-block:: python

            signal = session.network.get_signal_quality()
            print(f"Signal: {signal.dbm}")
        """
        logger.info("Getting signal quality")
        response = self.channel.send_command("AT+CSQ")
        signal = self._signal_parser.parse(split_lines(response))
        logger.debug(f"Signal quality: RSSI={signal.rssi}, quality={signal.quality}")
        return signal

    def get_operator(self) -> Optional[str]:
        """
        Get current operator name (AT+COPS?).

        Returns:
            Operator name, or None when not registered
        """
        logger.info("Getting current operator")
        response = self.channel.send_command("AT+COPS?")
        operator = self._operator_parser.parse(split_lines(response))
        logger.debug(f"Operator: {operator}")
        return operator
