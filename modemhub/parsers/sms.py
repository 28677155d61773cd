"""
SMS response parsers for AT commands.

Parses responses from SMS-related AT commands like:
- AT+CMGL (List messages, PDU and text mode)
- AT+CMGS (Send message)

and merges concatenated fragments back into whole messages.
"""

import logging
import re

from .pdu import decode_fragment, decode_pdu, decode_ucs2_hex
from ..exceptions import ATParseError, PDUError
from ..types import SMSFragment, SMSMessage, SMSStatus

logger = logging.getLogger(__name__)

_CMGL_PDU_RE = re.compile(r'\+CMGL:\s*(\d+)\s*,\s*(\d+)')
_CMGL_TEXT_RE = re.compile(
    r'\+CMGL:\s*(\d+),"([^"]*)","([^"]*)",(?:"[^"]*")?,(?:"([^"]*)")?'
)
_CMGS_RE = re.compile(r'\+CMGS:\s*(\d+)')


class SMSParser:
    """Parser for SMS-related AT command responses."""

    @staticmethod
    def parse_cmgl_pdu(response: list[str]) -> list[SMSFragment]:
        """
        Parse AT+CMGL response in PDU mode.

        Expected format (multiple messages):
            +CMGL: 1,0,,24
            07911234567890F0040B911234567890F00000230115103045800548656C6C6F
            +CMGL: 2,1,,26
            07911234567890F0040B910987654321F00000230115114530800648692074686572

        A PDU that fails to decode is kept as a single fragment whose text
        is the raw PDU.

        Args:
            response: Response lines from AT+CMGL

        Returns:
            List of SMSFragment objects in listing order
        """
        fragments = []
        i = 0

        while i < len(response):
            match = _CMGL_PDU_RE.match(response[i])
            i += 1
            if not match:
                continue

            # PDU data is on next line
            if i >= len(response) or response[i].startswith("+CMGL:"):
                logger.warning(f"CMGL entry {match.group(1)} has no PDU line")
                continue

            index = int(match.group(1))
            status = SMSStatus.from_pdu_stat(int(match.group(2)))
            pdu = response[i].strip()
            i += 1

            try:
                decoded = decode_pdu(pdu)
            except PDUError as e:
                logger.warning(f"Could not decode PDU at index {index}: {e}")
                fragments.append(SMSFragment(
                    index=index,
                    status=status,
                    sender="",
                    timestamp="",
                    text=pdu,
                    pdu=pdu
                ))
                continue

            fragments.append(SMSFragment(
                index=index,
                status=status,
                sender=decoded.sender,
                timestamp=decoded.timestamp,
                text=decoded.text,
                ref=decoded.ref,
                total=decoded.total,
                seq=decoded.seq,
                pdu=pdu
            ))

        logger.debug(f"Parsed {len(fragments)} PDU fragments")
        return fragments

    @staticmethod
    def parse_cmgl_text(response: list[str]) -> list[SMSFragment]:
        """
        Parse AT+CMGL response in text mode with the UCS2 character set.

        Expected format (multiple messages):
            +CMGL: 1,"REC READ","002B0031003200330034",,"23/01/15,10:30:45+00"
            00480065006C006C006F

        Sender and body arrive as UCS2 hex; the body may carry a
        concatenation prefix.

        Args:
            response: Response lines from AT+CMGL

        Returns:
            List of SMSFragment objects in listing order
        """
        fragments = []
        i = 0

        while i < len(response):
            match = _CMGL_TEXT_RE.match(response[i])
            i += 1
            if not match:
                continue

            # Content is on next line(s) until next header or end
            content_lines = []
            while i < len(response) and not response[i].startswith("+CMGL:"):
                content_lines.append(response[i])
                i += 1

            payload = "\n".join(content_lines).strip()
            decoded = decode_fragment(payload)

            fragments.append(SMSFragment(
                index=int(match.group(1)),
                status=match.group(2),
                sender=decode_ucs2_hex(match.group(3)),
                timestamp=match.group(4) or "",
                text=decoded.text,
                ref=decoded.ref,
                total=decoded.total,
                seq=decoded.seq,
                pdu=payload
            ))

        logger.debug(f"Parsed {len(fragments)} text-mode fragments")
        return fragments

    @staticmethod
    def parse_cmgs(response: list[str]) -> int:
        """
        Parse AT+CMGS response (send message).

        Expected format:
            +CMGS: 123

        Where 123 is the message reference number.

        Raises:
            ATParseError: If no reference is present
        """
        for line in response:
            match = _CMGS_RE.search(line)
            if match:
                return int(match.group(1))

        raise ATParseError(
            "No message reference in CMGS response",
            command="AT+CMGS",
            response="\n".join(response)
        )


def _as_message(fragment: SMSFragment) -> SMSMessage:
    return SMSMessage(
        index=fragment.index,
        status=fragment.status,
        sender=fragment.sender,
        timestamp=fragment.timestamp,
        content=fragment.text
    )


def reassemble(fragments: list[SMSFragment]) -> list[SMSMessage]:
    """
    Merge concatenated fragments into whole messages.

    Fragments with total > 1 are grouped by (sender, ref). A group is merged
    only when it holds exactly one fragment for every sequence number
    1..total; the merged message takes the metadata of the seq=1 fragment.
    Incomplete or inconsistent groups are returned fragment by fragment.

    Args:
        fragments: Fragments as listed by the device

    Returns:
        Messages ordered by storage index
    """
    messages = []
    groups: dict[tuple[str, int], list[SMSFragment]] = {}

    for fragment in fragments:
        if fragment.is_concatenated:
            groups.setdefault((fragment.sender, fragment.ref), []).append(fragment)
        else:
            messages.append(_as_message(fragment))

    for (sender, ref), parts in groups.items():
        total = parts[0].total
        complete = (
            len(parts) == total
            and all(part.total == total for part in parts)
            and {part.seq for part in parts} == set(range(1, total + 1))
        )
        if not complete:
            logger.warning(
                f"Incomplete concatenated SMS from {sender} ref={ref}: "
                f"{len(parts)} of {total} parts"
            )
            messages.extend(_as_message(part) for part in parts)
            continue

        parts.sort(key=lambda part: part.seq)
        first = parts[0]
        messages.append(SMSMessage(
            index=first.index,
            status=first.status,
            sender=sender,
            timestamp=first.timestamp,
            content="".join(part.text for part in parts),
            parts=total
        ))

    messages.sort(key=lambda message: message.index)
    return messages
