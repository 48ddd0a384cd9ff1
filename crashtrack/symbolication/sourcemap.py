"""
Source map v3 parser and position lookup.

``ParsedSourceMap.from_bytes`` decodes the ``mappings`` string into a
per-line table sorted by generated column, so ``lookup`` is a binary
search within one generated line. Lookups never fall back to a
neighbouring line.
"""
import json
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from crashtrack.symbolication import vlq
from crashtrack.symbolication.errors import (
    DecodeError,
    InvalidSourceMapError,
    UnsupportedVersionError,
)


class Mapping(NamedTuple):
    """One decoded segment. Lines and columns are 0-indexed."""

    generated_line: int
    generated_column: int
    source_index: int
    original_line: int
    original_column: int
    name_index: Optional[int]


class DecoderState(NamedTuple):
    """
    Running accumulators for delta decoding.

    ``generated_column`` resets at every new generated line; the other
    fields persist across the whole document.
    """

    generated_line: int = 0
    generated_column: int = 0
    source_index: int = 0
    original_line: int = 0
    original_column: int = 0
    name_index: int = 0

    def next_line(self) -> "DecoderState":
        return self._replace(generated_line=self.generated_line + 1, generated_column=0)

    def apply(self, values: List[int]) -> "DecoderState":
        """Return the state after adding one segment's deltas."""
        if len(values) not in (1, 4, 5):
            raise InvalidSourceMapError(
                f"Segment on generated line {self.generated_line} has {len(values)} fields "
                f"(expected 1, 4 or 5)"
            )
        state = self._replace(generated_column=self.generated_column + values[0])
        if len(values) >= 4:
            state = state._replace(
                source_index=state.source_index + values[1],
                original_line=state.original_line + values[2],
                original_column=state.original_column + values[3],
            )
        if len(values) == 5:
            state = state._replace(name_index=state.name_index + values[4])
        return state


@dataclass(frozen=True)
class OriginalPosition:
    """Resolved original location. ``line`` is 1-indexed, ``column`` 0-indexed."""

    source: str
    line: int
    column: int
    name: Optional[str] = None
    source_content: Optional[str] = None


def decode_mappings(mappings: str, source_count: int, name_count: int) -> List[Mapping]:
    """
    Decode a ``mappings`` string into a list of mappings.

    Segments with a single value only move the generated column and do not
    produce an entry.

    Raises:
        InvalidSourceMapError: Malformed segment or out-of-range index
    """
    decoded: List[Mapping] = []
    state = DecoderState()

    for line_number, line in enumerate(mappings.split(";")):
        if line_number:
            state = state.next_line()
        for segment in line.split(","):
            if not segment:
                continue
            try:
                values = vlq.decode(segment)
            except DecodeError as e:
                raise InvalidSourceMapError(
                    f"Invalid mapping segment on generated line {line_number}: {e}"
                ) from e
            state = state.apply(values)
            if len(values) == 1:
                continue

            if not 0 <= state.source_index < source_count:
                raise InvalidSourceMapError(f"Source index {state.source_index} out of range")
            if state.original_line < 0 or state.original_column < 0 or state.generated_column < 0:
                raise InvalidSourceMapError(
                    f"Negative position on generated line {line_number}"
                )
            name_index = None
            if len(values) == 5:
                if not 0 <= state.name_index < name_count:
                    raise InvalidSourceMapError(f"Name index {state.name_index} out of range")
                name_index = state.name_index

            decoded.append(
                Mapping(
                    generated_line=state.generated_line,
                    generated_column=state.generated_column,
                    source_index=state.source_index,
                    original_line=state.original_line,
                    original_column=state.original_column,
                    name_index=name_index,
                )
            )

    return decoded


def _string_list(raw: Dict[str, Any], key: str, allow_null: bool = False) -> List[Any]:
    value = raw.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidSourceMapError(f"'{key}' must be a list")
    for item in value:
        if item is None and allow_null:
            continue
        if not isinstance(item, str):
            raise InvalidSourceMapError(f"'{key}' must contain only strings")
    return value


@dataclass
class ParsedSourceMap:
    """Decoded source map ready for position lookups."""

    sources: List[str]
    names: List[str]
    sources_content: List[Optional[str]] = field(default_factory=list)
    file: Optional[str] = None
    source_root: Optional[str] = None
    _lines: Dict[int, Tuple[List[int], List[Mapping]]] = field(default_factory=dict, repr=False)
    _mapping_count: int = field(default=0, repr=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ParsedSourceMap":
        """
        Parse a source map document.

        Raises:
            UnsupportedVersionError: ``version`` is not 3
            InvalidSourceMapError: The document is malformed
        """
        try:
            raw = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidSourceMapError(f"Source map is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise InvalidSourceMapError("Source map must be a JSON object")
        return cls.from_dict(raw)

    @classmethod
    def from_str(cls, data: str) -> "ParsedSourceMap":
        return cls.from_bytes(data.encode("utf-8"))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ParsedSourceMap":
        version = raw.get("version")
        if version != 3 or isinstance(version, bool):
            raise UnsupportedVersionError(version)
        if "sections" in raw:
            raise InvalidSourceMapError("Indexed source maps (sections) are not supported")

        mappings = raw.get("mappings")
        if not isinstance(mappings, str):
            raise InvalidSourceMapError("'mappings' must be a string")

        sources = [s or "" for s in _string_list(raw, "sources", allow_null=True)]
        names = _string_list(raw, "names")
        sources_content = _string_list(raw, "sourcesContent", allow_null=True)
        source_root = raw.get("sourceRoot")
        if source_root is not None and not isinstance(source_root, str):
            raise InvalidSourceMapError("'sourceRoot' must be a string")
        file = raw.get("file")

        parsed = cls(
            sources=sources,
            names=names,
            sources_content=sources_content,
            file=file if isinstance(file, str) else None,
            source_root=source_root,
        )
        parsed._index(decode_mappings(mappings, len(sources), len(names)))
        return parsed

    def _index(self, mappings: List[Mapping]) -> None:
        lines: Dict[int, List[Mapping]] = {}
        for mapping in mappings:
            lines.setdefault(mapping.generated_line, []).append(mapping)
        for line, entries in lines.items():
            entries.sort(key=lambda m: m.generated_column)
            self._lines[line] = ([m.generated_column for m in entries], entries)
        self._mapping_count = len(mappings)

    @property
    def mapping_count(self) -> int:
        return self._mapping_count

    @property
    def has_sources_content(self) -> bool:
        return any(content is not None for content in self.sources_content)

    def resolve_source_path(self, source: str) -> str:
        if not self.source_root:
            return source
        if self.source_root.endswith("/"):
            return f"{self.source_root}{source}"
        return f"{self.source_root}/{source}"

    def lookup(self, line: int, column: int) -> Optional[OriginalPosition]:
        """
        Find the original position for a generated location.

        Args:
            line: Generated line, 1-indexed as reported in stack traces
            column: Generated column, 0-indexed

        Returns:
            OriginalPosition, or None when nothing maps at or before the
            column on that same line
        """
        if line < 1 or column < 0:
            return None
        entry = self._lines.get(line - 1)
        if entry is None:
            return None

        columns, mappings = entry
        index = bisect_right(columns, column) - 1
        if index < 0:
            return None

        mapping = mappings[index]
        source_content = None
        if mapping.source_index < len(self.sources_content):
            source_content = self.sources_content[mapping.source_index]
        name = self.names[mapping.name_index] if mapping.name_index is not None else None

        return OriginalPosition(
            source=self.resolve_source_path(self.sources[mapping.source_index]),
            line=mapping.original_line + 1,
            column=mapping.original_column,
            name=name,
            source_content=source_content,
        )


def extract_context(
    source_content: str, line: int, context_lines: int = 5
) -> Tuple[List[str], str, List[str]]:
    """
    Cut the lines around ``line`` (1-indexed) out of a source file.

    Returns:
        (pre_context, context_line, post_context), clamped at file
        boundaries; empty values when the line is out of range
    """
    lines = source_content.splitlines()
    index = line - 1
    if index < 0 or index >= len(lines):
        return [], "", []

    pre_start = max(0, index - context_lines)
    post_end = min(len(lines), index + 1 + context_lines)
    return lines[pre_start:index], lines[index], lines[index + 1:post_end]
