"""
Tests for SMS listing parsers and reassembly.
"""

import pytest

from modemhub.parsers.sms import SMSParser, reassemble
from modemhub.parsers.pdu import build_concat_udh, encode_ucs2, encode_ucs2_hex
from modemhub.exceptions import ATParseError
from modemhub.types import SMSFragment

# "hellohello" from 27838890001, GSM 7-bit
DELIVER_PDU = "07917283010010F5040BC87238880900F10000993092516195800AE8329BFD4697D9EC37"


def deliver_ucs2(text: str, concat=None) -> str:
    """Build a UCS2 SMS-DELIVER from +12345678901, with an optional concatenation header."""
    header = build_concat_udh(*concat) if concat else b""
    user_data = header + encode_ucs2(text)
    pdu_type = "44" if header else "04"
    return (
        "00" + pdu_type + "0B91" + "2143658709F1" + "0008" + "99309251619580"
        + f"{len(user_data):02X}" + user_data.hex().upper()
    )


def fragment(index, text, ref=0, total=1, seq=1, sender="+1234"):
    return SMSFragment(
        index=index,
        status="REC READ",
        sender=sender,
        timestamp="23/01/15,10:30:45+00",
        text=text,
        ref=ref,
        total=total,
        seq=seq,
    )


class TestParseCMGLPDU:
    """Test AT+CMGL parsing in PDU mode."""

    def test_single_message(self):
        response = ["+CMGL: 1,1,,35", DELIVER_PDU, "OK"]

        fragments = SMSParser.parse_cmgl_pdu(response)

        assert len(fragments) == 1
        assert fragments[0].index == 1
        assert fragments[0].status == "REC READ"
        assert fragments[0].sender == "27838890001"
        assert fragments[0].text == "hellohello"
        assert fragments[0].pdu == DELIVER_PDU

    def test_concatenated_parts(self):
        response = [
            "+CMGL: 4,0,,30", deliver_ucs2("World", concat=(7, 2, 2)),
            "+CMGL: 3,0,,30", deliver_ucs2("Hello ", concat=(7, 2, 1)),
            "OK",
        ]

        fragments = SMSParser.parse_cmgl_pdu(response)

        assert [(f.index, f.seq, f.total, f.ref) for f in fragments] == [(4, 2, 2, 7), (3, 1, 2, 7)]
        assert fragments[0].sender == "+12345678901"
        assert fragments[0].status == "REC UNREAD"

    def test_bad_pdu_kept_as_literal(self):
        """Test one undecodable PDU does not drop the rest of the listing."""
        response = [
            "+CMGL: 1,1,,5", "0791ZZ",
            "+CMGL: 2,1,,35", DELIVER_PDU,
            "OK",
        ]

        fragments = SMSParser.parse_cmgl_pdu(response)

        assert len(fragments) == 2
        assert fragments[0].text == "0791ZZ"
        assert fragments[0].total == 1
        assert fragments[1].text == "hellohello"

    def test_empty_listing(self):
        assert SMSParser.parse_cmgl_pdu(["OK"]) == []

    def test_header_without_pdu(self):
        response = ["+CMGL: 1,1,,35", "+CMGL: 2,1,,35", DELIVER_PDU, "OK"]

        fragments = SMSParser.parse_cmgl_pdu(response)

        assert [f.index for f in fragments] == [2]


class TestParseCMGLText:
    """Test AT+CMGL parsing in text mode with the UCS2 character set."""

    def test_single_message(self):
        response = [
            '+CMGL: 1,"REC READ","002B0031003200330034",,"23/01/15,10:30:45+00"',
            "00480065006C006C006F",
            "OK",
        ]

        fragments = SMSParser.parse_cmgl_text(response)

        assert len(fragments) == 1
        assert fragments[0].index == 1
        assert fragments[0].status == "REC READ"
        assert fragments[0].sender == "+1234"
        assert fragments[0].timestamp == "23/01/15,10:30:45+00"
        assert fragments[0].text == "Hello"

    def test_concatenated_part(self):
        response = [
            '+CMGL: 5,"REC UNREAD","002B0031",,"23/01/15,10:30:45+00"',
            encode_ucs2_hex("World", concat=(7, 2, 2)),
            "OK",
        ]

        fragments = SMSParser.parse_cmgl_text(response)

        assert (fragments[0].ref, fragments[0].total, fragments[0].seq) == (7, 2, 2)
        assert fragments[0].text == "World"

    def test_undecodable_body_is_literal(self):
        response = [
            '+CMGL: 2,"REC READ","002B0031",,"23/01/15,10:30:45+00"',
            "Plain text",
            "OK",
        ]

        fragments = SMSParser.parse_cmgl_text(response)

        assert fragments[0].text == "Plain text"
        assert fragments[0].total == 1


class TestParseCMGS:
    """Test AT+CMGS parsing."""

    def test_reference(self):
        assert SMSParser.parse_cmgs(["+CMGS: 123", "OK"]) == 123

    def test_missing_reference(self):
        with pytest.raises(ATParseError):
            SMSParser.parse_cmgs(["OK"])


class TestReassemble:
    """Test merging of concatenated fragments."""

    def test_hello_world(self):
        """Test two parts listed out of order merge in sequence order."""
        messages = reassemble([
            fragment(2, "World", ref=7, total=2, seq=2),
            fragment(1, "Hello ", ref=7, total=2, seq=1),
        ])

        assert len(messages) == 1
        assert messages[0].content == "Hello World"
        assert messages[0].index == 1
        assert messages[0].parts == 2

    def test_reported_under_first_part_index(self):
        messages = reassemble([
            fragment(3, "Hello ", ref=7, total=2, seq=1),
            fragment(1, "World", ref=7, total=2, seq=2),
        ])

        assert messages[0].index == 3

    def test_single_parts_never_merged(self):
        messages = reassemble([fragment(1, "One"), fragment(2, "Two")])

        assert [m.content for m in messages] == ["One", "Two"]

    def test_incomplete_group_not_merged(self):
        """Test partial fragment sets come back one by one."""
        messages = reassemble([
            fragment(1, "Hello ", ref=7, total=3, seq=1),
            fragment(2, "big ", ref=7, total=3, seq=2),
        ])

        assert [m.content for m in messages] == ["Hello ", "big "]
        assert all(m.parts == 1 for m in messages)

    def test_duplicate_sequence_not_merged(self):
        messages = reassemble([
            fragment(1, "A", ref=7, total=2, seq=1),
            fragment(2, "B", ref=7, total=2, seq=1),
        ])

        assert len(messages) == 2

    def test_groups_split_by_sender(self):
        messages = reassemble([
            fragment(1, "Hello ", ref=7, total=2, seq=1, sender="+1"),
            fragment(2, "World", ref=7, total=2, seq=2, sender="+1"),
            fragment(3, "Good", ref=7, total=2, seq=1, sender="+2"),
            fragment(4, "bye", ref=7, total=2, seq=2, sender="+2"),
        ])

        assert [(m.sender, m.content) for m in messages] == [("+1", "Hello World"), ("+2", "Goodbye")]

    def test_ordered_by_index(self):
        messages = reassemble([
            fragment(9, "Last"),
            fragment(5, "World", ref=1, total=2, seq=2),
            fragment(2, "First"),
            fragment(4, "Hello ", ref=1, total=2, seq=1),
        ])

        assert [m.index for m in messages] == [2, 4, 9]
        assert messages[1].content == "Hello World"
