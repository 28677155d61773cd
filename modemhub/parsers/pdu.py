"""
PDU encoding and decoding for SMS messages.

Implements GSM 03.40 specification for SMS PDU format.
Supports:
- 7-bit GSM alphabet (160 chars)
- UCS2 Unicode (70 chars)
- Concatenated SMS user data headers (8-bit and 16-bit references)
- SMS-DELIVER and SMS-SUBMIT decoding
- UCS2 hex payloads used by text mode with the "UCS2" character set
"""

import re
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

from ..exceptions import PDUError


# GSM 7-bit default alphabet
GSM7_BASIC = (
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞ\x1bÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)

# GSM 7-bit extended characters (escaped with 0x1B)
GSM7_EXTENDED = {
    "\f": 0x0A,  # Form feed
    "^": 0x14,   # Caret
    "{": 0x28,   # Left brace
    "}": 0x29,   # Right brace
    "\\": 0x2F,  # Backslash
    "[": 0x3C,   # Left bracket
    "~": 0x3D,   # Tilde
    "]": 0x3E,   # Right bracket
    "|": 0x40,   # Pipe
    "€": 0x65,   # Euro sign
}

# Reverse mapping for decoding
GSM7_EXTENDED_REV = {v: k for k, v in GSM7_EXTENDED.items()}

# Escape septet; a literal ESC character has no GSM 7-bit encoding
GSM7_ESCAPE = 0x1B

# Concatenation information element identifiers
IEI_CONCAT_8BIT = 0x00
IEI_CONCAT_16BIT = 0x08

# Per-message capacity (septets for GSM7, UTF-16 code units for UCS2)
GSM7_SINGLE_LIMIT = 160
GSM7_PART_LIMIT = 153
UCS2_SINGLE_LIMIT = 70
UCS2_PART_LIMIT = 67
MAX_USER_DATA_OCTETS = 140

# Semi-octet values above 9 in address fields
_EXTRA_DIGITS = "*#abc"

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")


class DecodedFragment(NamedTuple):
    """Text of one payload plus its concatenation info."""
    text: str
    ref: int = 0
    total: int = 1
    seq: int = 1


@dataclass
class DecodedPDU:
    """Fields extracted from an SMS-DELIVER or SMS-SUBMIT PDU."""
    sender: str
    timestamp: str
    text: str
    encoding: str
    ref: int = 0
    total: int = 1
    seq: int = 1


@dataclass
class SubmitPDU:
    """An encoded SMS-SUBMIT ready for AT+CMGS."""
    pdu: str            # Hex, including the leading SMSC length octet
    tpdu_length: int    # Octets after the SMSC field, as AT+CMGS expects


def _is_gsm7_basic(char: str) -> bool:
    return char in GSM7_BASIC and char != chr(GSM7_ESCAPE)


def _gsm7_septets(text: str) -> list[int]:
    """Map text to GSM 7-bit septet values."""
    septets = []

    for char in text:
        if _is_gsm7_basic(char):
            septets.append(GSM7_BASIC.index(char))
        elif char in GSM7_EXTENDED:
            # Extended character needs escape
            septets.append(GSM7_ESCAPE)
            septets.append(GSM7_EXTENDED[char])
        else:
            raise PDUError(f"Character '{char}' not in GSM 7-bit alphabet")

    return septets


def is_gsm7_encodable(text: str) -> bool:
    """Check whether text fits the GSM 7-bit alphabet."""
    return all(_is_gsm7_basic(char) or char in GSM7_EXTENDED for char in text)


def encode_gsm7(text: str) -> bytes:
    """
    Encode text to 7-bit GSM alphabet.

    Args:
        text: Text to encode

    Returns:
        Encoded bytes (7-bit packed)

    Raises:
        PDUError: If text contains unsupported characters
    """
    return _pack_septets(_gsm7_septets(text))


def decode_gsm7(data: bytes, length: int) -> str:
    """
    Decode 7-bit GSM alphabet to text.

    Args:
        data: Packed 7-bit data
        length: Number of septets (not bytes!)

    Returns:
        Decoded text
    """
    return _septets_to_text(_unpack_septets(data, length))


def _septets_to_text(septets: list[int]) -> str:
    text = []
    i = 0
    while i < len(septets):
        if septets[i] == GSM7_ESCAPE:
            # Extended character escape
            if i + 1 < len(septets):
                i += 1
                text.append(GSM7_EXTENDED_REV.get(septets[i], "?"))
            i += 1
        else:
            if septets[i] < len(GSM7_BASIC):
                text.append(GSM7_BASIC[septets[i]])
            else:
                text.append("?")  # Unknown char
            i += 1

    return "".join(text)


def _pack_septets(septets: list[int]) -> bytes:
    """Pack 7-bit septets into 8-bit octets."""
    if not septets:
        return b''

    octets = []
    bits = 0  # Accumulated bits
    bits_count = 0  # Number of bits accumulated

    for septet in septets:
        bits |= (septet << bits_count)
        bits_count += 7

        while bits_count >= 8:
            octets.append(bits & 0xFF)
            bits >>= 8
            bits_count -= 8

    if bits_count > 0:
        octets.append(bits & 0xFF)

    return bytes(octets)


def _unpack_septets(octets: bytes, length: int) -> list[int]:
    """Unpack 8-bit octets into 7-bit septets."""
    if not octets or length == 0:
        return []

    septets = []
    bits = 0  # Accumulated bits
    bits_count = 0  # Number of bits accumulated

    for octet in octets:
        bits |= (octet << bits_count)
        bits_count += 8

        while bits_count >= 7 and len(septets) < length:
            septets.append(bits & 0x7F)
            bits >>= 7
            bits_count -= 7

        if len(septets) >= length:
            break

    return septets[:length]


def _header_septets(header_octets: int) -> int:
    """Septets occupied by a user data header, fill bits included."""
    return (header_octets * 8 + 6) // 7


def encode_ucs2(text: str) -> bytes:
    """
    Encode text to UCS2 (UTF-16 BE).

    Characters outside the BMP become surrogate pairs.
    """
    return text.encode("utf-16-be")


def decode_ucs2(data: bytes) -> str:
    """
    Decode UCS2 (UTF-16 BE) to text.

    Raises:
        PDUError: If the data has odd length or broken surrogates
    """
    if len(data) % 2:
        raise PDUError(f"UCS2 data has odd length: {len(data)}")
    try:
        return data.decode("utf-16-be")
    except UnicodeDecodeError as e:
        raise PDUError(f"Invalid UCS2 data: {e}") from e


def encode_ucs2_hex(text: str, concat: Optional[Tuple[int, int, int]] = None) -> str:
    """
    Encode text as the uppercase UCS2 hex used in text mode.

    Args:
        text: Message text
        concat: Optional (ref, total, seq) to prefix a concatenation header

    Returns:
        Hex string
    """
    header = build_concat_udh(*concat) if concat else b""
    return (header + encode_ucs2(text)).hex().upper()


def decode_ucs2_hex(value: str, pattern: Optional[str] = None) -> str:
    """
    Decode a UCS2 hex string, returning it unchanged if it is not one.

    Args:
        value: Possibly UCS2-hex encoded text
        pattern: Regex the decoded text must fully match to be accepted

    Returns:
        Decoded text, or the original value
    """
    candidate = value.strip()
    if not candidate or len(candidate) % 4 or not _HEX_RE.fullmatch(candidate):
        return value
    try:
        text = decode_ucs2(bytes.fromhex(candidate))
    except PDUError:
        return value
    if pattern is not None and not re.fullmatch(pattern, text):
        return value
    if not text.isprintable():
        return value
    return text


def build_concat_udh(ref: int, total: int, seq: int) -> bytes:
    """
    Build a concatenation user data header, length octet included.

    References above 255 use the 16-bit form.

    Raises:
        PDUError: If the values are out of range
    """
    if not 1 <= total <= 255 or not 1 <= seq <= total:
        raise PDUError(f"Invalid concatenation sequence {seq}/{total}")
    if not 0 <= ref <= 0xFFFF:
        raise PDUError(f"Invalid concatenation reference {ref}")

    if ref > 0xFF:
        return bytes([0x06, IEI_CONCAT_16BIT, 0x04, ref >> 8, ref & 0xFF, total, seq])
    return bytes([0x05, IEI_CONCAT_8BIT, 0x03, ref, total, seq])


def parse_udh(header: bytes) -> Optional[Tuple[int, int, int]]:
    """
    Find concatenation info in a user data header.

    Args:
        header: Header bytes starting with the UDHL octet

    Returns:
        (ref, total, seq), or None if the header has no concatenation element
    """
    if not header:
        return None

    body = header[1:1 + header[0]]
    i = 0
    while i + 1 < len(body):
        iei, iedl = body[i], body[i + 1]
        value = body[i + 2:i + 2 + iedl]
        if len(value) < iedl:
            break
        if iei == IEI_CONCAT_8BIT and iedl == 3:
            return value[0], value[1], value[2]
        if iei == IEI_CONCAT_16BIT and iedl == 4:
            return (value[0] << 8) | value[1], value[2], value[3]
        i += 2 + iedl

    return None


def encode_phone_number(number: str) -> Tuple[bytes, int]:
    """
    Encode phone number to PDU format.

    Args:
        number: Phone number (may start with +)

    Returns:
        Tuple of (encoded bytes, type-of-address byte)
    """
    if number.startswith("+"):
        number = number[1:]
        type_of_addr = 0x91  # International, ISDN/telephone
    else:
        type_of_addr = 0x81  # Unknown, ISDN/telephone

    number = re.sub(r"[^0-9]", "", number)

    # Swap digits in pairs (semi-octet format)
    if len(number) % 2:
        number += "F"  # Pad with F if odd length

    octets = []
    for i in range(0, len(number), 2):
        octet = int(number[i+1], 16) << 4 | int(number[i], 16)
        octets.append(octet)

    return bytes(octets), type_of_addr


def decode_phone_number(data: bytes, length: int, type_of_addr: int) -> str:
    """
    Decode an address field.

    Args:
        data: Encoded address
        length: Number of semi-octets (digits)
        type_of_addr: Type-of-address byte

    Returns:
        Decoded phone number or alphanumeric sender
    """
    # Alphanumeric sender, GSM 7-bit packed
    if (type_of_addr & 0x70) == 0x50:
        return decode_gsm7(data, (length * 4) // 7)

    digits = []

    for octet in data:
        for nibble in (octet & 0x0F, (octet >> 4) & 0x0F):
            if nibble == 0xF:
                continue
            digits.append(str(nibble) if nibble < 10 else _EXTRA_DIGITS[nibble - 10])

    number = "".join(digits[:length])

    if (type_of_addr & 0x70) == 0x10:  # International
        number = "+" + number

    return number


def decode_timestamp(data: bytes) -> str:
    """
    Decode timestamp from PDU format.

    Args:
        data: 7-byte timestamp

    Returns:
        Timestamp string in format: YY/MM/DD,HH:MM:SS±TZ
    """
    if len(data) < 7:
        raise PDUError(f"Invalid timestamp length: {len(data)}")

    def decode_semi_octet(octet: int) -> int:
        """Decode semi-octet (swapped digits)."""
        low = (octet >> 4) & 0x0F
        high = octet & 0x0F
        return high * 10 + low

    year = decode_semi_octet(data[0])
    month = decode_semi_octet(data[1])
    day = decode_semi_octet(data[2])
    hour = decode_semi_octet(data[3])
    minute = decode_semi_octet(data[4])
    second = decode_semi_octet(data[5])

    # Timezone (in quarters of an hour, with sign bit)
    tz_octet = data[6]
    tz_sign = "-" if (tz_octet & 0x08) else "+"
    tz_value = decode_semi_octet(tz_octet & 0xF7)  # Clear sign bit

    return f"{year:02d}/{month:02d}/{day:02d},{hour:02d}:{minute:02d}:{second:02d}{tz_sign}{tz_value:02d}"


def _digit_count(number: str) -> int:
    return len(re.sub(r"[^0-9]", "", number))


def _encode_gsm7_user_data(text: str, header: bytes) -> Tuple[bytes, int]:
    """Pack text after an optional header, returning (user data, UDL in septets)."""
    septets = _gsm7_septets(text)
    if not header:
        return _pack_septets(septets), len(septets)

    # Zero septets reserve the header and its fill bits
    skip = _header_septets(len(header))
    packed = bytearray(_pack_septets([0] * skip + septets))
    packed[:len(header)] = header
    return bytes(packed), skip + len(septets)


def encode_sms_submit(
    number: str,
    text: str,
    encoding: str = "auto",
    concat: Optional[Tuple[int, int, int]] = None,
    request_status: bool = False
) -> SubmitPDU:
    """
    Encode SMS-SUBMIT PDU.

    The text must fit one PDU; use split_message() first for long text.

    Args:
        number: Destination phone number
        text: Message text
        encoding: "gsm7", "ucs2", or "auto"
        concat: Optional (ref, total, seq) concatenation header values
        request_status: Request status report

    Returns:
        SubmitPDU with hex PDU and the TPDU length for AT+CMGS

    Raises:
        PDUError: If the text does not fit or cannot be encoded
    """
    if encoding == "auto":
        encoding = "gsm7" if is_gsm7_encodable(text) else "ucs2"

    header = build_concat_udh(*concat) if concat else b""

    pdu = []

    # SMSC length (let modem use default)
    pdu.append(0x00)

    # PDU type (SMS-SUBMIT)
    pdu_type = 0x01
    if request_status:
        pdu_type |= 0x20  # Status Report Request
    if header:
        pdu_type |= 0x40  # User Data Header Indicator
    pdu.append(pdu_type)

    # Message Reference (let modem assign)
    pdu.append(0x00)

    # Destination address
    phone_data, phone_type = encode_phone_number(number)
    pdu.append(_digit_count(number))
    pdu.append(phone_type)
    pdu.extend(phone_data)

    # Protocol Identifier (normal SMS)
    pdu.append(0x00)

    if encoding == "gsm7":
        dcs = 0x00
        user_data, user_data_length = _encode_gsm7_user_data(text, header)
        if user_data_length > GSM7_SINGLE_LIMIT:
            raise PDUError(f"Text needs {user_data_length} septets, limit is {GSM7_SINGLE_LIMIT}")
    elif encoding == "ucs2":
        dcs = 0x08
        user_data = header + encode_ucs2(text)
        user_data_length = len(user_data)
        if user_data_length > MAX_USER_DATA_OCTETS:
            raise PDUError(f"Text needs {user_data_length} octets, limit is {MAX_USER_DATA_OCTETS}")
    else:
        raise PDUError(f"Unsupported encoding: {encoding}")

    pdu.append(dcs)
    pdu.append(user_data_length)
    pdu.extend(user_data)

    return SubmitPDU(
        pdu="".join(f"{b:02X}" for b in pdu),
        tpdu_length=len(pdu) - 1
    )


def _dcs_encoding(dcs: int) -> str:
    """Alphabet named by a data coding scheme octet."""
    if (dcs & 0xF0) == 0xF0:
        return "8bit" if dcs & 0x04 else "gsm7"
    return {0: "gsm7", 1: "8bit", 2: "ucs2"}.get((dcs >> 2) & 0x03, "gsm7")


def decode_pdu(pdu_hex: str) -> DecodedPDU:
    """
    Decode an SMS-DELIVER or SMS-SUBMIT PDU.

    Args:
        pdu_hex: Hex-encoded PDU string, SMSC field included

    Returns:
        DecodedPDU; SMS-SUBMIT PDUs carry the destination as sender and no timestamp

    Raises:
        PDUError: If the PDU is malformed or truncated
    """
    try:
        pdu = bytes.fromhex(pdu_hex.strip())
    except ValueError as e:
        raise PDUError(f"Invalid PDU hex: {e}") from e

    try:
        return _decode_tpdu(pdu)
    except IndexError as e:
        raise PDUError(f"Truncated PDU ({len(pdu)} octets)") from e


def _decode_tpdu(pdu: bytes) -> DecodedPDU:
    idx = 0

    # SMSC length
    smsc_len = pdu[idx]
    idx += 1 + smsc_len

    pdu_type = pdu[idx]
    idx += 1

    mti = pdu_type & 0x03
    if mti == 0x01:
        idx += 1  # Message Reference
    elif mti != 0x00:
        raise PDUError(f"Unsupported PDU type: {pdu_type:02X}")

    # Originating/destination address
    addr_len = pdu[idx]
    addr_type = pdu[idx + 1]
    idx += 2
    addr_octets = (addr_len + 1) // 2
    addr_data = pdu[idx:idx + addr_octets]
    if len(addr_data) < addr_octets:
        raise PDUError("Truncated address field")
    idx += addr_octets
    address = decode_phone_number(addr_data, addr_len, addr_type)

    # Protocol Identifier, Data Coding Scheme
    dcs = pdu[idx + 1]
    idx += 2

    if mti == 0x00:
        timestamp = decode_timestamp(pdu[idx:idx + 7])
        idx += 7
    else:
        timestamp = ""
        vpf = (pdu_type >> 3) & 0x03
        idx += {0: 0, 2: 1}.get(vpf, 7)

    udl = pdu[idx]
    idx += 1
    user_data = pdu[idx:]

    has_header = bool(pdu_type & 0x40)
    encoding = _dcs_encoding(dcs)
    concat = None

    if encoding == "gsm7":
        if len(user_data) < (udl * 7 + 7) // 8:
            raise PDUError("Truncated user data")
        septets = _unpack_septets(user_data, udl)
        skip = 0
        if has_header:
            header_len = user_data[0] + 1
            concat = parse_udh(user_data[:header_len])
            skip = _header_septets(header_len)
        text = _septets_to_text(septets[skip:])
    else:
        if len(user_data) < udl:
            raise PDUError("Truncated user data")
        body = user_data[:udl]
        if has_header:
            header_len = body[0] + 1
            concat = parse_udh(body[:header_len])
            body = body[header_len:]
        text = decode_ucs2(body) if encoding == "ucs2" else body.decode("latin-1")

    ref, total, seq = concat if concat else (0, 1, 1)
    return DecodedPDU(
        sender=address,
        timestamp=timestamp,
        text=text,
        encoding=encoding,
        ref=ref,
        total=total,
        seq=seq,
    )


def decode_fragment(payload: str) -> DecodedFragment:
    """
    Decode a UCS2 hex payload with an optional concatenation prefix.

    Recognized prefixes are ``05 00 03 ref total seq`` and
    ``06 08 04 refHi refLo total seq``. Payloads that are not valid hex, or
    whose UCS2 body is malformed, come back as literal text with total=1.

    Args:
        payload: Hex text as listed by the device

    Returns:
        DecodedFragment(text, ref, total, seq)
    """
    content = payload.strip()
    literal = DecodedFragment(content)

    if len(content) % 2:
        return literal
    try:
        data = bytes.fromhex(content)
    except ValueError:
        return literal

    offset, ref, total, seq = 0, 0, 1, 1
    if len(data) > 6 and data[:3] == b"\x05\x00\x03":
        offset, ref, total, seq = 6, data[3], data[4], data[5]
    elif len(data) > 7 and data[:3] == b"\x06\x08\x04":
        offset, ref, total, seq = 7, (data[3] << 8) | data[4], data[5], data[6]

    try:
        text = decode_ucs2(data[offset:])
    except PDUError:
        return literal

    return DecodedFragment(text, ref, total, seq)


def split_message(text: str, encoding: str = "auto") -> list[str]:
    """
    Split text into the parts a concatenated SMS needs.

    Escape sequences and surrogate pairs are never split.

    Args:
        text: Message text
        encoding: "gsm7", "ucs2", or "auto"

    Returns:
        List with one entry per physical SMS
    """
    if encoding == "auto":
        encoding = "gsm7" if is_gsm7_encodable(text) else "ucs2"

    if encoding == "gsm7":
        def cost(char: str) -> int:
            return 2 if char in GSM7_EXTENDED else 1
        single, limit = GSM7_SINGLE_LIMIT, GSM7_PART_LIMIT
    elif encoding == "ucs2":
        def cost(char: str) -> int:
            return 2 if ord(char) > 0xFFFF else 1
        single, limit = UCS2_SINGLE_LIMIT, UCS2_PART_LIMIT
    else:
        raise PDUError(f"Unsupported encoding: {encoding}")

    if sum(cost(char) for char in text) <= single:
        return [text]

    parts = []
    current: list[str] = []
    used = 0
    for char in text:
        if used + cost(char) > limit:
            parts.append("".join(current))
            current, used = [], 0
        current.append(char)
        used += cost(char)
    if current:
        parts.append("".join(current))

    return parts


def calculate_sms_parts(text: str, encoding: str = "auto") -> int:
    """
    Calculate number of SMS parts needed for text.

    Args:
        text: Message text
        encoding: "gsm7", "ucs2", or "auto"

    Returns:
        Number of SMS parts required
    """
    return len(split_message(text, encoding))
