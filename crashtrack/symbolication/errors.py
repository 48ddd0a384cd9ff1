"""
Errors raised while decoding debug artifacts.

These never leave the symbolication pipeline: a failing frame is kept
as it was received.
"""


class DecodeError(ValueError):
    """Base error for VLQ decoding failures."""


class InvalidSymbolError(DecodeError):
    """A character outside the base64 alphabet was found."""

    def __init__(self, char: str, position: int):
        self.char = char
        self.position = position
        super().__init__(f"Invalid base64 VLQ character {char!r} at position {position}")


class TruncatedError(DecodeError):
    """The input ended while a continuation bit was still set."""

    def __init__(self, segment: str):
        self.segment = segment
        super().__init__(f"Truncated VLQ segment: {segment!r}")


class SourceMapError(ValueError):
    """Base error for source map parsing failures."""


class UnsupportedVersionError(SourceMapError):
    """Only version 3 source maps are understood."""

    def __init__(self, version):
        self.version = version
        super().__init__(f"Unsupported source map version: {version!r} (expected 3)")


class InvalidSourceMapError(SourceMapError):
    """The document is not a well-formed source map."""
