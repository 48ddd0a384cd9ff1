"""
Tests for crashtrack/services/symbolication_service.py

Source maps are uploaded through the artifact service into a temporary
SQLite database, then resolved for event frames.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from crashtrack.database.models.crash_types import Platform
from crashtrack.database.repositories.symbol_artifact import SymbolArtifactRepository
from crashtrack.models.crash_models import Frame, Stacktrace
from crashtrack.services.artifact_service import ArtifactService
from crashtrack.services.symbolication_service import (
    SymbolicationService,
    source_map_candidates,
)
from crashtrack.symbolication.cache import SourceMapCache


def js_stacktrace(*frames):
    return Stacktrace(frames=[Frame(**frame) for frame in frames])


MINIFIED_FRAME = {
    "function": "a",
    "filename": "app.min.js",
    "lineno": 1,
    "colno": 10,
    "in_app": True,
}


@pytest.fixture
def symbolication_service(db):
    return SymbolicationService(SourceMapCache(8), timeout_seconds=5.0, context_lines=5)


class TestSourceMapCandidates:
    """Tests for artifact name candidates."""

    def test_plain_filename(self):
        assert source_map_candidates("app.min.js") == ["app.min.js.map", "app.min.js"]

    def test_map_filename_is_not_doubled(self):
        assert source_map_candidates("app.js.map") == ["app.js.map"]

    def test_url_adds_tilde_path(self):
        candidates = source_map_candidates(
            "app.min.js", "https://cdn.example.com/static/app.min.js"
        )
        assert candidates == [
            "app.min.js.map",
            "app.min.js",
            "https://cdn.example.com/static/app.min.js.map",
            "https://cdn.example.com/static/app.min.js",
            "~/static/app.min.js.map",
            "~/static/app.min.js",
        ]

    def test_malformed_url_keeps_plain_names(self):
        assert source_map_candidates("http://[bad") == ["http://[bad.map", "http://[bad"]


class TestJavaScriptSymbolication:
    """Tests for source map resolution."""

    @pytest.mark.asyncio
    async def test_resolves_frame_with_context(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        stacktrace = js_stacktrace(MINIFIED_FRAME)

        result = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="1.0.0"
        )

        frame = result.stacktrace.frames[0]
        assert result.attempted is True
        assert result.symbolicated_frames == 1
        assert (frame.filename, frame.lineno, frame.colno) == ("app.ts", 42, 3)
        assert frame.function == "loadUser"
        assert frame.context_line == "line 42"
        assert frame.pre_context == [f"line {n}" for n in range(37, 42)]
        assert frame.post_context == [f"line {n}" for n in range(43, 48)]
        # The input is left as received
        assert stacktrace.frames[0].filename == "app.min.js"
        assert stacktrace.frames[0].function == "a"

    @pytest.mark.asyncio
    async def test_without_release_frames_are_unchanged(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        stacktrace = js_stacktrace(MINIFIED_FRAME)

        result = await symbolication_service.symbolicate(project.id, Platform.JAVASCRIPT, stacktrace)

        assert result.attempted is False
        assert result.stacktrace == stacktrace

    @pytest.mark.asyncio
    async def test_unknown_release_frames_are_unchanged(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        stacktrace = js_stacktrace(MINIFIED_FRAME)

        result = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="9.9.9"
        )

        assert result.attempted is True
        assert result.changed is False
        assert result.stacktrace == stacktrace

    @pytest.mark.asyncio
    async def test_unmapped_position_keeps_frame(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        stacktrace = js_stacktrace(
            {**MINIFIED_FRAME, "colno": 2},
            {**MINIFIED_FRAME, "lineno": 5},
            {**MINIFIED_FRAME, "colno": None},
            MINIFIED_FRAME,
        )

        result = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="1.0.0"
        )

        frames = result.stacktrace.frames
        assert [f.filename for f in frames] == ["app.min.js", "app.min.js", "app.min.js", "app.ts"]
        assert result.symbolicated_frames == 1

    @pytest.mark.asyncio
    async def test_malformed_url_frame_is_skipped(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        stacktrace = js_stacktrace({**MINIFIED_FRAME, "filename": "http://[bad"}, MINIFIED_FRAME)

        result = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="1.0.0"
        )

        frames = result.stacktrace.frames
        assert [f.filename for f in frames] == ["http://[bad", "app.ts"]
        assert result.symbolicated_frames == 1

    @pytest.mark.asyncio
    async def test_dist_must_match(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(
            project.id, "1.0.0", [("app.min.js.map", app_source_map)], dist="web"
        )
        stacktrace = js_stacktrace(MINIFIED_FRAME)

        without_dist = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="1.0.0"
        )
        with_dist = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, stacktrace, release="1.0.0", dist="web"
        )

        assert without_dist.changed is False
        assert with_dist.stacktrace.frames[0].filename == "app.ts"

    @pytest.mark.asyncio
    async def test_follows_source_mapping_url(self, symbolication_service, project, app_source_map):
        minified = b"function a(){}\n//# sourceMappingURL=maps/app.js.map\n"
        await ArtifactService().upload(
            project.id,
            "1.0.0",
            [("app.min.js", minified), ("maps/app.js.map", app_source_map)],
        )

        result = await symbolication_service.symbolicate(
            project.id, Platform.JAVASCRIPT, js_stacktrace(MINIFIED_FRAME), release="1.0.0"
        )

        assert result.stacktrace.frames[0].filename == "app.ts"

    @pytest.mark.asyncio
    async def test_repeated_events_use_cache(self, symbolication_service, project, app_source_map):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])

        for _ in range(3):
            await symbolication_service.symbolicate(
                project.id, Platform.JAVASCRIPT, js_stacktrace(MINIFIED_FRAME), release="1.0.0"
            )

        stats = symbolication_service.cache.get_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 2

    @pytest.mark.asyncio
    async def test_timeout_keeps_raw_frames(self):
        @asynccontextmanager
        async def slow_session():
            await asyncio.sleep(1)
            yield None

        service = SymbolicationService(
            SourceMapCache(4), session_factory=slow_session, timeout_seconds=0.05, context_lines=5
        )
        stacktrace = js_stacktrace(MINIFIED_FRAME)

        result = await service.symbolicate("p1", Platform.JAVASCRIPT, stacktrace, release="1.0.0")

        assert result.timed_out is True
        assert result.stacktrace == stacktrace

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_break_shared_load(
        self, symbolication_service, project, app_source_map, monkeypatch
    ):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        read_data = SymbolArtifactRepository.get_data

        async def slow_read(self, artifact_id):
            await asyncio.sleep(0.2)
            return await read_data(self, artifact_id)

        monkeypatch.setattr(SymbolArtifactRepository, "get_data", slow_read)

        def run():
            return asyncio.ensure_future(symbolication_service.symbolicate(
                project.id, Platform.JAVASCRIPT, js_stacktrace(MINIFIED_FRAME), release="1.0.0"
            ))

        first = run()
        await asyncio.sleep(0.03)
        second = run()
        await asyncio.sleep(0.03)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        result = await second

        assert result.stacktrace.frames[0].filename == "app.ts"
        assert symbolication_service.cache.get_stats()["loads"] == 1


class TestRustSymbolication:
    """Tests for Rust demangling."""

    @pytest.mark.asyncio
    async def test_demangles_without_release(self):
        service = SymbolicationService(SourceMapCache(4), timeout_seconds=1.0, context_lines=5)
        stacktrace = Stacktrace(frames=[
            Frame(function="_ZN8my_crate7handler7process17h0123456789abcdefE", in_app=True),
            Frame(function="main"),
        ])

        result = await service.symbolicate("p1", Platform.RUST, stacktrace)

        first, second = result.stacktrace.frames
        assert first.function == "process"
        assert first.module == "my_crate::handler"
        assert second.function == "main"
        assert result.symbolicated_frames == 1

    def test_existing_module_is_kept(self):
        frame = Frame(function="_ZN3foo3barE", module="custom")
        demangled = SymbolicationService.demangle_frame(frame)
        assert demangled.function == "foo::bar"
        assert demangled.module == "custom"
