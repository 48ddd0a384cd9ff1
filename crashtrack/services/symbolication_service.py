"""
Stack trace symbolication.

JavaScript and Node frames are resolved through source maps uploaded for
the event's release. Rust frames are demangled. Every failure is local to
one frame, and a symbolication pass that runs out of time leaves the
stack trace as it was received.
"""
import asyncio
import logging
import posixpath
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from sqlalchemy.exc import SQLAlchemyError

from crashtrack.config.settings import get_settings
from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_types import ArtifactType, Platform
from crashtrack.database.models.symbol_artifact import SymbolArtifact
from crashtrack.database.repositories.symbol_artifact import SymbolArtifactRepository
from crashtrack.models.crash_models import Frame, Stacktrace
from crashtrack.symbolication.cache import SourceMapCache
from crashtrack.symbolication.demangle import demangle, split_module
from crashtrack.symbolication.sourcemap import ParsedSourceMap, extract_context

logger = logging.getLogger(__name__)

# Errors that only disable symbolication of the frame being processed
# (SourceMapError and DecodeError subclass ValueError)
FRAME_ERRORS = (ValueError, SQLAlchemyError, OSError, asyncio.TimeoutError)


@dataclass
class SymbolicationResult:
    """Outcome of symbolicating one stack trace."""

    stacktrace: Stacktrace
    attempted: bool = False
    symbolicated_frames: int = 0
    timed_out: bool = False

    @property
    def changed(self) -> bool:
        return self.symbolicated_frames > 0


def source_map_candidates(filename: str, abs_path: Optional[str] = None) -> List[str]:
    """
    Artifact names to try for a frame, most specific first.

    ``app.min.js`` yields ``app.min.js.map`` then ``app.min.js``. URLs also
    yield their ``~/path`` form, which matches artifacts uploaded without a
    host.
    """
    names: List[str] = []
    for path in (filename, abs_path):
        if not path:
            continue
        variants = [path]
        try:
            parts = urlsplit(path)
        except ValueError:
            parts = None
        if parts is not None and parts.scheme and parts.path:
            variants.append(f"~{parts.path}")
        for variant in variants:
            for name in (variant if variant.endswith(".map") else f"{variant}.map", variant):
                if name not in names:
                    names.append(name)
    return names


class SymbolicationService:
    """Resolves frames against uploaded artifacts with a shared parse cache."""

    def __init__(
        self,
        cache: Optional[SourceMapCache] = None,
        session_factory: Callable = get_session,
        timeout_seconds: Optional[float] = None,
        context_lines: Optional[int] = None,
    ):
        settings = get_settings()
        self.cache = cache or SourceMapCache(settings.sourcemap_cache_size)
        self.session_factory = session_factory
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.symbolication_timeout_seconds
        )
        self.context_lines = (
            context_lines if context_lines is not None else settings.source_context_lines
        )

    async def symbolicate(
        self,
        project_id: str,
        platform: Platform,
        stacktrace: Stacktrace,
        release: Optional[str] = None,
        dist: Optional[str] = None,
    ) -> SymbolicationResult:
        """
        Symbolicate a stack trace.

        Args:
            project_id: Project owning the artifacts
            platform: Event platform
            stacktrace: Frames as received
            release: Release the artifacts were uploaded for
            dist: Optional distribution

        Returns:
            SymbolicationResult; ``stacktrace`` is a new object and the input
            is never modified
        """
        if platform == Platform.RUST:
            frames = [self.demangle_frame(frame) for frame in stacktrace.frames]
            changed = sum(1 for old, new in zip(stacktrace.frames, frames) if old != new)
            return SymbolicationResult(Stacktrace(frames=frames), attempted=True, symbolicated_frames=changed)

        if not platform.uses_source_maps or not release:
            logger.debug("No release on event, skipping source map symbolication")
            return SymbolicationResult(stacktrace.model_copy(deep=True))

        try:
            return await asyncio.wait_for(
                self._symbolicate_js(project_id, stacktrace, release, dist),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Symbolication timed out after {self.timeout_seconds}s "
                f"(project {project_id[:8]}, release {release}); keeping raw frames"
            )
            return SymbolicationResult(stacktrace.model_copy(deep=True), attempted=True, timed_out=True)

    @staticmethod
    def demangle_frame(frame: Frame) -> Frame:
        """Demangle a compiled-language frame, filling ``module`` when absent."""
        if not frame.function:
            return frame.model_copy()
        demangled = demangle(frame.function)
        module, function = split_module(demangled)
        update = {"function": demangled}
        if frame.module is None and module is not None:
            update = {"function": function, "module": module}
        return frame.model_copy(update=update)

    async def _symbolicate_js(
        self,
        project_id: str,
        stacktrace: Stacktrace,
        release: str,
        dist: Optional[str],
    ) -> SymbolicationResult:
        frames: List[Frame] = []
        resolved = 0
        # filename -> parsed map (None when unavailable), per stack trace
        maps: Dict[Tuple[str, Optional[str]], Optional[ParsedSourceMap]] = {}

        for index, frame in enumerate(stacktrace.frames):
            if not frame.filename or frame.lineno is None or frame.colno is None:
                frames.append(frame.model_copy())
                continue
            try:
                key = (frame.filename, frame.abs_path)
                if key not in maps:
                    maps[key] = await self._load_source_map(project_id, release, dist, frame)
                source_map = maps[key]
                new_frame = self._apply_source_map(frame, source_map) if source_map else None
            except FRAME_ERRORS as e:
                logger.warning(
                    f"Frame #{index} ({frame.filename}:{frame.lineno}:{frame.colno}) "
                    f"not symbolicated: {e.__class__.__name__}: {e}"
                )
                new_frame = None

            if new_frame is None:
                frames.append(frame.model_copy())
            else:
                frames.append(new_frame)
                resolved += 1

        logger.debug(f"Symbolicated {resolved}/{len(frames)} frames for release {release}")
        return SymbolicationResult(Stacktrace(frames=frames), attempted=True, symbolicated_frames=resolved)

    def _apply_source_map(self, frame: Frame, source_map: ParsedSourceMap) -> Optional[Frame]:
        position = source_map.lookup(frame.lineno, frame.colno)
        if position is None:
            return None

        update = {
            "filename": position.source,
            "abs_path": position.source,
            "lineno": position.line,
            "colno": position.column,
        }
        if position.name:
            update["function"] = position.name
        if position.source_content is not None:
            pre, line, post = extract_context(position.source_content, position.line, self.context_lines)
            update.update(pre_context=pre, context_line=line, post_context=post)
        return frame.model_copy(update=update)

    async def _load_source_map(
        self, project_id: str, release: str, dist: Optional[str], frame: Frame
    ) -> Optional[ParsedSourceMap]:
        """Find the artifact for a frame and return its parsed map, or None."""
        async with self.session_factory() as session:
            repo = SymbolArtifactRepository(session)
            artifact = await self._find_artifact(repo, project_id, release, dist, frame)
            if artifact is None:
                logger.debug(f"No source map for {frame.filename} in release {release}")
                return None
            artifact_id, sha256 = artifact.id, artifact.sha256
            await repo.touch(artifact_id)

        # Shared with concurrent callers, so it opens its own session
        async def load() -> bytes:
            async with self.session_factory() as load_session:
                return await SymbolArtifactRepository(load_session).get_data(artifact_id)

        return await self.cache.get_or_load(sha256, load)

    async def _find_artifact(
        self,
        repo: SymbolArtifactRepository,
        project_id: str,
        release: str,
        dist: Optional[str],
        frame: Frame,
    ) -> Optional[SymbolArtifact]:
        candidates = source_map_candidates(frame.filename, frame.abs_path)
        artifact = await repo.find_first(
            project_id, release, dist, candidates, ArtifactType.SOURCE_MAP
        )
        if artifact is not None:
            return artifact

        # Fall back to the sourceMappingURL recorded on the minified file
        minified = await repo.find_first(
            project_id, release, dist, candidates, ArtifactType.MINIFIED_SOURCE
        )
        if minified is None or not minified.source_map_url:
            return None
        if minified.source_map_url.startswith("data:"):
            return None

        referenced = urljoin(minified.name, minified.source_map_url)
        names = [referenced, posixpath.basename(urlsplit(referenced).path)]
        return await repo.find_first(project_id, release, dist, names, ArtifactType.SOURCE_MAP)
