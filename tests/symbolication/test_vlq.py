"""
Unit tests for crashtrack/symbolication/vlq.py
"""

import pytest

from crashtrack.symbolication import vlq
from crashtrack.symbolication.errors import DecodeError, InvalidSymbolError, TruncatedError


class TestDecode:
    """Tests for base64 VLQ decoding."""

    @pytest.mark.parametrize(
        "segment,expected",
        [
            ("A", [0]),
            ("C", [1]),
            ("D", [-1]),
            ("gB", [16]),
            ("AAAA", [0, 0, 0, 0]),
            ("AAgBC", [0, 0, 16, 1]),
            ("UAyCG", [10, 0, 41, 3]),
        ],
    )
    def test_known_segments(self, segment, expected):
        assert vlq.decode(segment) == expected

    def test_empty_segment(self):
        assert vlq.decode("") == []

    def test_invalid_character(self):
        with pytest.raises(InvalidSymbolError) as exc_info:
            vlq.decode("AA!A")
        assert exc_info.value.char == "!"
        assert exc_info.value.position == 2

    def test_truncated_segment(self):
        # 'g' has the continuation bit set and nothing follows
        with pytest.raises(TruncatedError):
            vlq.decode("Ag")

    def test_errors_share_base_class(self):
        with pytest.raises(DecodeError):
            vlq.decode("*")


class TestEncode:
    """Tests for VLQ encoding."""

    @pytest.mark.parametrize("value", [0, 1, -1, 15, 16, -16, 1000, -123456, 2**31 - 1])
    def test_decode_inverts_encode(self, value):
        assert vlq.decode(vlq.encode_value(value)) == [value]

    def test_encode_sequence(self):
        values = [10, 0, 41, 3, -7]
        assert vlq.decode(vlq.encode(values)) == values

    def test_encoded_output_uses_alphabet(self):
        assert set(vlq.encode([123, -456, 789])) <= set(vlq.BASE64_ALPHABET)
