"""
Base64 VLQ codec used by source map ``mappings`` strings.

Each base64 character carries 5 payload bits plus a continuation bit
(``0b100000``). Groups are little-endian; once a group without the
continuation bit is read, bit 0 of the accumulated value is the sign and
the remaining bits are the magnitude.
"""
from typing import Iterable, List

from crashtrack.symbolication.errors import InvalidSymbolError, TruncatedError

BASE64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

_CONTINUATION_BIT = 0b100000
_PAYLOAD_MASK = 0b011111
_DECODE_TABLE = {char: index for index, char in enumerate(BASE64_ALPHABET)}


def decode(segment: str) -> List[int]:
    """
    Decode a VLQ segment into signed integers.

    Args:
        segment: Base64 VLQ text (one mapping segment, without commas)

    Returns:
        List of decoded values in order

    Raises:
        InvalidSymbolError: A character is outside the base64 alphabet
        TruncatedError: The segment ends in the middle of a value
    """
    values: List[int] = []
    value = 0
    shift = 0
    pending = False

    for position, char in enumerate(segment):
        digit = _DECODE_TABLE.get(char)
        if digit is None:
            raise InvalidSymbolError(char, position)

        value += (digit & _PAYLOAD_MASK) << shift
        shift += 5
        pending = bool(digit & _CONTINUATION_BIT)

        if not pending:
            negative = value & 1
            value >>= 1
            values.append(-value if negative else value)
            value = 0
            shift = 0

    if pending:
        raise TruncatedError(segment)

    return values


def encode_value(value: int) -> str:
    """Encode a single signed integer as VLQ text."""
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    chars = []
    while True:
        digit = vlq & _PAYLOAD_MASK
        vlq >>= 5
        if vlq:
            digit |= _CONTINUATION_BIT
        chars.append(BASE64_ALPHABET[digit])
        if not vlq:
            break
    return "".join(chars)


def encode(values: Iterable[int]) -> str:
    """Encode a sequence of signed integers as one VLQ segment."""
    return "".join(encode_value(value) for value in values)
