"""
Best-effort demangling of compiled-language symbols.

Handles the Rust legacy scheme (``_ZN...E``). Symbols that are not
recognised are returned untouched; nothing here raises.
"""
import re
from typing import List, Optional, Tuple

_LEGACY_PREFIXES = ("__ZN", "_ZN", "ZN")
_HASH_SEGMENT = re.compile(r"^h[0-9a-f]{16}$")
_HASH_SUFFIX = re.compile(r"::h[0-9a-f]{16}$")

_ESCAPES = {
    "SP": "@",
    "BP": "*",
    "RF": "&",
    "LT": "<",
    "GT": ">",
    "LP": "(",
    "RP": ")",
    "C": ",",
}


def _unescape(segment: str) -> Optional[str]:
    """Decode ``$..$`` escapes and ``..`` separators of one path segment."""
    if segment.startswith("_$"):
        segment = segment[1:]

    out = []
    i = 0
    while i < len(segment):
        char = segment[i]
        if char == "$":
            end = segment.find("$", i + 1)
            if end == -1:
                return None
            code = segment[i + 1:end]
            if code in _ESCAPES:
                out.append(_ESCAPES[code])
            elif code.startswith("u") and len(code) > 1:
                try:
                    out.append(chr(int(code[1:], 16)))
                except (ValueError, OverflowError):
                    return None
            else:
                return None
            i = end + 1
        elif segment.startswith("..", i):
            out.append("::")
            i += 2
        else:
            out.append(char)
            i += 1
    return "".join(out)


def _parse_legacy(symbol: str) -> Optional[List[str]]:
    for prefix in _LEGACY_PREFIXES:
        if symbol.startswith(prefix):
            body = symbol[len(prefix):]
            break
    else:
        return None

    segments: List[str] = []
    i = 0
    while i < len(body) and body[i] != "E":
        start = i
        while i < len(body) and body[i].isdigit():
            i += 1
        if start == i:
            return None
        length = int(body[start:i])
        if length == 0 or i + length > len(body):
            return None
        segments.append(body[i:i + length])
        i += length

    # Trailing text after the terminator (e.g. ".llvm.1234") is ignored
    if i >= len(body) or not segments:
        return None
    return segments


def demangle(symbol: Optional[str]) -> Optional[str]:
    """
    Return the human readable form of a symbol.

    Legacy Rust symbols lose their trailing ``h<hash>`` segment. Plain
    names with a ``::h<hash>`` suffix lose the suffix. Anything else is
    returned unchanged.
    """
    if not symbol:
        return symbol

    segments = _parse_legacy(symbol)
    if segments is None:
        return _HASH_SUFFIX.sub("", symbol)

    if len(segments) > 1 and _HASH_SEGMENT.match(segments[-1]):
        segments = segments[:-1]

    decoded = []
    for segment in segments:
        text = _unescape(segment)
        if text is None:
            return symbol
        decoded.append(text)
    return "::".join(decoded)


def split_module(name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split ``a::b::func`` into ``("a::b", "func")``.

    Separators inside generic arguments (``<...>``) are not split points.
    Names without a separator yield ``(None, name)``.
    """
    if not name:
        return None, name

    depth = 0
    split_at = -1
    i = 0
    while i < len(name):
        char = name[i]
        if char == "<":
            depth += 1
        elif char == ">" and depth > 0:
            depth -= 1
        elif depth == 0 and name.startswith("::", i):
            split_at = i
            i += 2
            continue
        i += 1

    if split_at <= 0:
        return None, name
    return name[:split_at], name[split_at + 2:]
