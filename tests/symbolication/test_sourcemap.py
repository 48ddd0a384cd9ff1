"""
Unit tests for crashtrack/symbolication/sourcemap.py

Tests for source map parsing:
- Header validation
- Mapping decoding and lookup
- Source context extraction
"""

import json
import random

import pytest

from crashtrack.symbolication import vlq
from crashtrack.symbolication.errors import (
    InvalidSourceMapError,
    SourceMapError,
    UnsupportedVersionError,
)
from crashtrack.symbolication.sourcemap import (
    DecoderState,
    ParsedSourceMap,
    decode_mappings,
    extract_context,
)


class TestParsing:
    """Tests for document validation."""

    def test_parse_minimal_map(self, build_source_map):
        parsed = ParsedSourceMap.from_bytes(build_source_map([[0, 0, 0, 0]]))
        assert parsed.sources == ["app.ts"]
        assert parsed.mapping_count == 1
        assert parsed.has_sources_content is False

    @pytest.mark.parametrize("version", [2, 4, "3", None, True])
    def test_rejects_other_versions(self, version):
        document = json.dumps({"version": version, "sources": [], "names": [], "mappings": ""})
        with pytest.raises(UnsupportedVersionError):
            ParsedSourceMap.from_str(document)

    def test_rejects_invalid_json(self):
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_bytes(b"{not json")

    def test_rejects_non_object(self):
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_bytes(b"[1, 2, 3]")

    def test_rejects_indexed_maps(self):
        document = {"version": 3, "sections": [], "mappings": ""}
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_dict(document)

    def test_rejects_invalid_mapping_characters(self):
        document = {"version": 3, "sources": ["a.js"], "names": [], "mappings": "AA!A"}
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_dict(document)

    def test_rejects_out_of_range_source(self):
        document = {"version": 3, "sources": ["a.js"], "names": [], "mappings": vlq.encode([0, 3, 0, 0])}
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_dict(document)

    def test_rejects_bad_segment_arity(self):
        document = {"version": 3, "sources": ["a.js"], "names": [], "mappings": vlq.encode([0, 0])}
        with pytest.raises(InvalidSourceMapError):
            ParsedSourceMap.from_dict(document)

    def test_all_errors_are_source_map_errors(self):
        with pytest.raises(SourceMapError):
            ParsedSourceMap.from_bytes(b"null")


class TestDecodeMappings:
    """Tests for delta decoding across segments and lines."""

    def test_generated_column_resets_per_line(self):
        # Line 0: col 5; line 1: col 2 (relative to 0, not 5)
        mappings = vlq.encode([5, 0, 0, 0]) + ";" + vlq.encode([2, 0, 1, 0])
        decoded = decode_mappings(mappings, source_count=1, name_count=0)
        assert [(m.generated_line, m.generated_column) for m in decoded] == [(0, 5), (1, 2)]
        assert decoded[1].original_line == 1

    def test_single_field_segments_produce_no_mapping(self):
        mappings = ",".join([vlq.encode([4]), vlq.encode([3, 0, 0, 0])])
        decoded = decode_mappings(mappings, source_count=1, name_count=0)
        assert len(decoded) == 1
        assert decoded[0].generated_column == 7

    def test_empty_lines_are_skipped(self):
        decoded = decode_mappings(";;" + vlq.encode([0, 0, 0, 0]), source_count=1, name_count=0)
        assert decoded[0].generated_line == 2

    def test_decoder_state_is_immutable(self):
        state = DecoderState()
        advanced = state.apply([3, 0, 1, 2])
        assert state.generated_column == 0
        assert (advanced.generated_column, advanced.original_line, advanced.original_column) == (3, 1, 2)


class TestLookup:
    """Tests for generated to original position lookup."""

    def test_exact_match(self, app_source_map):
        parsed = ParsedSourceMap.from_bytes(app_source_map)
        position = parsed.lookup(1, 10)
        assert position.source == "app.ts"
        assert position.line == 42
        assert position.column == 3
        assert position.name == "loadUser"

    def test_column_after_mapping_uses_preceding_segment(self, app_source_map):
        position = ParsedSourceMap.from_bytes(app_source_map).lookup(1, 25)
        assert position.line == 42

    def test_column_before_first_mapping_is_unmapped(self, app_source_map):
        assert ParsedSourceMap.from_bytes(app_source_map).lookup(1, 9) is None

    def test_no_fallback_to_other_lines(self, app_source_map):
        parsed = ParsedSourceMap.from_bytes(app_source_map)
        assert parsed.lookup(2, 10) is None
        assert parsed.lookup(0, 10) is None

    def test_picks_closest_segment(self, build_source_map):
        parsed = ParsedSourceMap.from_bytes(
            build_source_map([[0, 0, 0, 0], [10, 0, 5, 2], [20, 0, 9, 4]])
        )
        assert parsed.lookup(1, 15).line == 6
        assert parsed.lookup(1, 20).line == 10

    def test_source_root_is_prepended(self, build_source_map):
        parsed = ParsedSourceMap.from_bytes(
            build_source_map([[0, 0, 0, 0]], sources=["src/app.ts"], sourceRoot="webpack:///")
        )
        assert parsed.lookup(1, 0).source == "webpack:///src/app.ts"

    def test_source_content_is_returned(self, app_source_map):
        position = ParsedSourceMap.from_bytes(app_source_map).lookup(1, 10)
        assert position.source_content.splitlines()[41] == "line 42"


def encode_mapping_table(table):
    """
    Encode rows of absolute [gen_col, source, orig_line, orig_col(, name)]
    segments, one row per generated line.
    """
    # source, orig_line, orig_col, name persist across lines
    previous = [0, 0, 0, 0]
    lines = []
    for row in table:
        generated_column = 0
        encoded = []
        for segment in row:
            deltas = [segment[0] - generated_column]
            generated_column = segment[0]
            for i, value in enumerate(segment[1:]):
                deltas.append(value - previous[i])
                previous[i] = value
            encoded.append(vlq.encode(deltas))
        lines.append(",".join(encoded))
    return ";".join(lines)


def random_mapping_table(rng, line_count, source_count, name_count):
    table = []
    for _ in range(line_count):
        row = []
        column = 0
        for _ in range(rng.randint(0, 6)):
            column += rng.randint(1 if row else 0, 40)
            segment = [column, rng.randrange(source_count), rng.randint(0, 500), rng.randint(0, 120)]
            if rng.random() < 0.5:
                segment.append(rng.randrange(name_count))
            row.append(segment)
        table.append(row)
    return table


class TestRoundTrip:
    """Every encoded position of a generated table is found again by lookup."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_multi_line_table(self, seed):
        rng = random.Random(seed)
        sources = ["src/a.ts", "src/b.ts", "lib/c.js"]
        names = [f"fn{i}" for i in range(8)]
        table = random_mapping_table(rng, line_count=40, source_count=len(sources), name_count=len(names))
        document = {
            "version": 3,
            "sources": sources,
            "names": names,
            "mappings": encode_mapping_table(table),
        }

        parsed = ParsedSourceMap.from_bytes(json.dumps(document).encode("utf-8"))

        assert parsed.mapping_count == sum(len(row) for row in table)
        for line_index, row in enumerate(table):
            for segment in row:
                position = parsed.lookup(line_index + 1, segment[0])
                assert position.source == sources[segment[1]]
                assert (position.line, position.column) == (segment[2] + 1, segment[3])
                expected_name = names[segment[4]] if len(segment) == 5 else None
                assert position.name == expected_name
            if not row:
                assert parsed.lookup(line_index + 1, 0) is None


class TestExtractContext:
    """Tests for source context extraction."""

    SOURCE = "\n".join(f"line {n}" for n in range(1, 21))

    def test_five_lines_each_side(self):
        pre, line, post = extract_context(self.SOURCE, 10)
        assert line == "line 10"
        assert pre == [f"line {n}" for n in range(5, 10)]
        assert post == [f"line {n}" for n in range(11, 16)]

    def test_clamped_at_file_start(self):
        pre, line, post = extract_context(self.SOURCE, 2)
        assert pre == ["line 1"]
        assert line == "line 2"
        assert len(post) == 5

    def test_clamped_at_file_end(self):
        pre, line, post = extract_context(self.SOURCE, 20)
        assert line == "line 20"
        assert post == []
        assert len(pre) == 5

    def test_out_of_range_line(self):
        assert extract_context(self.SOURCE, 50) == ([], "", [])
        assert extract_context(self.SOURCE, 0) == ([], "", [])
