"""
Response parsers for AT command responses.

Provides type-safe parsing of modem responses into structured data,
plus the SMS PDU codec.
"""

from .base import ResponseParser, FirstValueParser, split_lines
from .modem import SignalQualityParser, OperatorParser, PhoneNumberParser
from .sms import SMSParser, reassemble

__all__ = [
    "ResponseParser",
    "FirstValueParser",
    "split_lines",
    "SignalQualityParser",
    "OperatorParser",
    "PhoneNumberParser",
    "SMSParser",
    "reassemble",
]
