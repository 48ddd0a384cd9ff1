"""
Upload and management of symbol artifacts.

Files ending in ``.map`` are validated as v3 source maps before they are
stored; anything else is stored as a minified source, recording its
``sourceMappingURL`` comment when present. Re-uploading identical bytes
under the same name is a no-op.
"""
import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from crashtrack.config.settings import get_settings
from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_types import ArtifactType
from crashtrack.database.models.symbol_artifact import SymbolArtifact
from crashtrack.database.repositories.project import CrashProjectRepository
from crashtrack.database.repositories.symbol_artifact import SymbolArtifactRepository
from crashtrack.exceptions import (
    ArtifactNotFoundError,
    ArtifactValidationError,
    ProjectNotFoundError,
)
from crashtrack.symbolication.errors import SourceMapError
from crashtrack.symbolication.sourcemap import ParsedSourceMap
from crashtrack.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

_SOURCE_MAPPING_URL = re.compile(rb"^[ \t]*//[#@][ \t]*sourceMappingURL=(\S+)[ \t]*$", re.MULTILINE)


@dataclass
class StoredArtifact:
    """Artifact row as reported back to the uploader."""

    artifact: SymbolArtifact
    created: bool


@dataclass
class UploadResult:
    total: int = 0
    artifacts: List[StoredArtifact] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def uploaded_count(self) -> int:
        return sum(1 for stored in self.artifacts if stored.created)

    @property
    def existing_count(self) -> int:
        return sum(1 for stored in self.artifacts if not stored.created)

    @property
    def error_count(self) -> int:
        return len(self.errors)


def classify_artifact(filename: str) -> ArtifactType:
    if filename.endswith(".map"):
        return ArtifactType.SOURCE_MAP
    return ArtifactType.MINIFIED_SOURCE


def find_source_mapping_url(data: bytes) -> Optional[str]:
    """Return the last ``//# sourceMappingURL=`` value of a minified file."""
    matches = _SOURCE_MAPPING_URL.findall(data)
    if not matches:
        return None
    return matches[-1].decode("utf-8", errors="replace")


def validate_release(release: Optional[str], max_length: int) -> str:
    if release is None or not release.strip():
        raise ArtifactValidationError("release is required", {"field": "release"})
    if len(release) > max_length:
        raise ArtifactValidationError(
            f"release must be at most {max_length} characters", {"field": "release"}
        )
    return release


class ArtifactService:
    """Stores and lists symbol artifacts for a project release."""

    def __init__(self, session_factory: Callable = get_session):
        self.session_factory = session_factory
        self.settings = get_settings()

    async def _inspect(self, filename: str, data: bytes) -> Tuple[ArtifactType, bool, Optional[str]]:
        """
        Validate one file.

        Returns:
            (artifact type, has sources content, sourceMappingURL)

        Raises:
            ArtifactValidationError: The file cannot be accepted
        """
        if not filename or "\x00" in filename:
            raise ArtifactValidationError("Invalid filename")
        if len(filename) > 1000:
            raise ArtifactValidationError("Filename too long")
        if not data:
            raise ArtifactValidationError("File is empty")
        if len(data) > self.settings.max_artifact_size_bytes:
            raise ArtifactValidationError(
                f"File exceeds {self.settings.max_artifact_size_bytes} bytes"
            )

        artifact_type = classify_artifact(filename)
        if artifact_type == ArtifactType.SOURCE_MAP:
            try:
                parsed = await asyncio.to_thread(ParsedSourceMap.from_bytes, data)
            except SourceMapError as e:
                raise ArtifactValidationError(f"Invalid source map: {e}") from e
            return artifact_type, parsed.has_sources_content, None

        return artifact_type, False, find_source_mapping_url(data)

    async def upload(
        self,
        project_id: str,
        release: Optional[str],
        files: Sequence[Tuple[str, bytes]],
        dist: Optional[str] = None,
        uploaded_by: Optional[str] = None,
    ) -> UploadResult:
        """
        Store uploaded files for a release.

        Args:
            project_id: Project id
            release: Release the files belong to
            files: (filename, content) pairs
            dist: Optional distribution; empty means none
            uploaded_by: Optional uploader identifier

        Returns:
            UploadResult with stored artifacts and per-file errors

        Raises:
            ProjectNotFoundError: Unknown project
            ArtifactValidationError: Invalid release, no files, or every file
                was rejected
        """
        release = validate_release(release, self.settings.max_release_length)
        dist = dist or None
        if not files:
            raise ArtifactValidationError("No files uploaded")

        result = UploadResult(total=len(files))
        inspected = []
        for filename, data in files:
            try:
                inspected.append((filename, data, await self._inspect(filename, data)))
            except ArtifactValidationError as e:
                logger.warning(f"Rejected artifact {filename!r} for release {release}: {e.message}")
                result.errors.append((filename, e.message))

        async with self.session_factory() as session:
            project = await CrashProjectRepository(session).get_by_id(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            repo = SymbolArtifactRepository(session)

            for filename, data, (artifact_type, has_content, map_url) in inspected:
                stored = await self._store(
                    repo, project.id, project.org_id, release, dist, filename, data,
                    artifact_type, has_content, map_url, uploaded_by,
                )
                result.artifacts.append(stored)

        if result.errors and not result.artifacts:
            raise ArtifactValidationError(
                "No valid artifacts in upload",
                {"errors": [{"filename": name, "error": error} for name, error in result.errors]},
            )

        logger.info(
            f"📦 Artifacts for {release}: {result.uploaded_count} uploaded, "
            f"{result.existing_count} existing, {result.error_count} rejected"
        )
        return result

    async def _store(
        self,
        repo: SymbolArtifactRepository,
        project_id: str,
        org_id: str,
        release: str,
        dist: Optional[str],
        name: str,
        data: bytes,
        artifact_type: ArtifactType,
        has_content: bool,
        map_url: Optional[str],
        uploaded_by: Optional[str],
    ) -> StoredArtifact:
        sha256 = hashlib.sha256(data).hexdigest()
        values = {
            "artifact_type": artifact_type.value,
            "data": data,
            "size_bytes": len(data),
            "sha256": sha256,
            "sources_content": has_content,
            "source_map_url": map_url,
            "uploaded_by": uploaded_by,
        }

        existing = await repo.get_by_name(project_id, release, dist, name)
        if existing is None:
            created = await repo.insert_ignore(
                {
                    **values,
                    "org_id": org_id,
                    "project_id": project_id,
                    "release": release,
                    "dist": dist or "",
                    "name": name,
                    "uploaded_at": utc_now(),
                },
                ("project_id", "release", "dist", "name"),
            )
            artifact = await repo.get_by_name(project_id, release, dist, name)
            return StoredArtifact(artifact, created)

        if existing.sha256 == sha256:
            return StoredArtifact(existing, False)

        logger.info(f"Replacing artifact {name!r} in release {release} (content changed)")
        for key, value in values.items():
            setattr(existing, key, value)
        existing.uploaded_at = utc_now()
        await repo.update(existing)
        return StoredArtifact(existing, True)

    async def list_artifacts(
        self, project_id: str, release: Optional[str] = None, limit: int = 100
    ) -> List[SymbolArtifact]:
        async with self.session_factory() as session:
            if await CrashProjectRepository(session).get_by_id(project_id) is None:
                raise ProjectNotFoundError(project_id)
            return await SymbolArtifactRepository(session).list_for_release(project_id, release, limit)

    async def get_artifact(self, project_id: str, artifact_id: str) -> SymbolArtifact:
        async with self.session_factory() as session:
            artifact = await SymbolArtifactRepository(session).get_by_id(artifact_id)
        if artifact is None or artifact.project_id != project_id:
            raise ArtifactNotFoundError(artifact_id)
        return artifact

    async def delete_artifact(self, project_id: str, artifact_id: str) -> None:
        async with self.session_factory() as session:
            repo = SymbolArtifactRepository(session)
            artifact = await repo.get_by_id(artifact_id)
            if artifact is None or artifact.project_id != project_id:
                raise ArtifactNotFoundError(artifact_id)
            await repo.delete(artifact)
            logger.info(f"Deleted artifact {artifact.name!r} from release {artifact.release}")
