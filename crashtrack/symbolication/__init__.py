"""
Symbolication primitives.

Source-map decoding, position lookup, symbol demangling and the parsed
source-map cache. Nothing in this package touches the database.
"""
from crashtrack.symbolication.cache import SourceMapCache
from crashtrack.symbolication.demangle import demangle, split_module
from crashtrack.symbolication.errors import (
    DecodeError,
    InvalidSourceMapError,
    InvalidSymbolError,
    SourceMapError,
    TruncatedError,
    UnsupportedVersionError,
)
from crashtrack.symbolication.sourcemap import (
    OriginalPosition,
    ParsedSourceMap,
    extract_context,
)

__all__ = [
    "SourceMapCache",
    "demangle",
    "split_module",
    "DecodeError",
    "InvalidSymbolError",
    "TruncatedError",
    "SourceMapError",
    "InvalidSourceMapError",
    "UnsupportedVersionError",
    "OriginalPosition",
    "ParsedSourceMap",
    "extract_context",
]
