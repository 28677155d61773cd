"""
Device information manager.

Handles identity queries: manufacturer, model, IMEI, IMSI and own number.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..parsers.base import FirstValueParser, split_lines
from ..parsers.modem import PhoneNumberParser

if TYPE_CHECKING:
    from ..core import CommandChannel

logger = logging.getLogger(__name__)


class DeviceManager:
    """
    Manages device identity queries.

    Each query is a single AT command; callers that want a best-effort
    aggregate (see ``DeviceSession.get_identity``) catch errors per call.
    """

    def __init__(self, channel: "CommandChannel") -> None:
        """
        Initialize device manager.

        Args:
            channel: CommandChannel used for AT command execution
        """
        self.channel = channel

        # Parsers
        self._value_parser = FirstValueParser()
        self._number_parser = PhoneNumberParser()

        logger.debug("Initialized DeviceManager")

    def _query_value(self, cmd: str) -> str:
        response = self.channel.send_command(cmd)
        value = self._value_parser.parse(split_lines(response), command=cmd)
        logger.debug(f"{cmd}: {value}")
        return value

    def get_manufacturer(self) -> str:
        """
        Get modem manufacturer (AT+CGMI).

        Example:

        .. code-block:: python

            print(session.device.get_manufacturer())
        """
        logger.info("Getting manufacturer")
        return self._query_value("AT+CGMI")

    def get_model(self) -> str:
        """Get modem model (AT+CGMM)."""
        logger.info("Getting model")
        return self._query_value("AT+CGMM")

    def get_imei(self) -> str:
        """
        Get device IMEI (International Mobile Equipment Identity).

        Returns:
            15-digit IMEI string
        """
        logger.info("Getting IMEI")
        return self._query_value("AT+CGSN")

    def get_imsi(self) -> str:
        """
        Get SIM IMSI (International Mobile Subscriber Identity).

        Returns:
            IMSI string (usually 15 digits)
        """
        logger.info("Getting IMSI")
        return self._query_value("AT+CIMI")

    def get_phone_number(self) -> Optional[str]:
        """
        Get the subscriber's own number (AT+CNUM).

        Returns:
            Phone number, or None if the SIM does not store one
        """
        logger.info("Getting phone number")
        response = self.channel.send_command("AT+CNUM")
        return self._number_parser.parse(split_lines(response))
