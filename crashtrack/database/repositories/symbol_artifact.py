"""
Repository for uploaded symbol artifacts.
"""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.models.crash_types import ArtifactType
from crashtrack.database.models.symbol_artifact import SymbolArtifact
from crashtrack.database.repositories.base import BaseRepository
from crashtrack.utils.time_utils import utc_now


class SymbolArtifactRepository(BaseRepository[SymbolArtifact]):
    """Repository for source maps and minified sources."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, SymbolArtifact)

    async def get_by_name(
        self, project_id: str, release: str, dist: Optional[str], name: str
    ) -> Optional[SymbolArtifact]:
        result = await self.session.execute(
            select(SymbolArtifact).where(
                SymbolArtifact.project_id == project_id,
                SymbolArtifact.release == release,
                SymbolArtifact.dist == (dist or ""),
                SymbolArtifact.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def find_first(
        self,
        project_id: str,
        release: str,
        dist: Optional[str],
        names: Sequence[str],
        artifact_type: Optional[ArtifactType] = None,
    ) -> Optional[SymbolArtifact]:
        """
        Find the first artifact matching one of ``names``, in the order given.

        Args:
            project_id: Project id
            release: Release the artifact was uploaded for
            dist: Optional distribution
            names: Candidate names, most specific first
            artifact_type: Optional type filter
        """
        if not names:
            return None
        query = select(SymbolArtifact).where(
            SymbolArtifact.project_id == project_id,
            SymbolArtifact.release == release,
            SymbolArtifact.dist == (dist or ""),
            SymbolArtifact.name.in_(list(names)),
        )
        if artifact_type is not None:
            query = query.where(SymbolArtifact.artifact_type == artifact_type.value)
        result = await self.session.execute(query)
        by_name = {artifact.name: artifact for artifact in result.scalars().all()}
        for name in names:
            if name in by_name:
                return by_name[name]
        return None

    async def get_data(self, artifact_id: str) -> bytes:
        """Read an artifact's content; raises NoResultFound if it was deleted."""
        result = await self.session.execute(
            select(SymbolArtifact.data).where(SymbolArtifact.id == artifact_id)
        )
        return result.scalar_one()

    async def list_for_release(
        self, project_id: str, release: Optional[str] = None, limit: int = 100
    ) -> List[SymbolArtifact]:
        query = select(SymbolArtifact).where(SymbolArtifact.project_id == project_id)
        if release is not None:
            query = query.where(SymbolArtifact.release == release)
        query = query.order_by(SymbolArtifact.uploaded_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def touch(self, artifact_id: str) -> None:
        """Record that an artifact was read for symbolication."""
        await self.session.execute(
            update(SymbolArtifact)
            .where(SymbolArtifact.id == artifact_id)
            .values(last_accessed_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    async def delete_before(self, cutoff: datetime, batch_size: int = 1000) -> int:
        """
        Delete up to ``batch_size`` artifacts uploaded before ``cutoff``
        and not read since.

        Returns:
            Number of deleted artifacts
        """
        ids = (
            select(SymbolArtifact.id)
            .where(
                SymbolArtifact.uploaded_at < cutoff,
                or_(
                    SymbolArtifact.last_accessed_at.is_(None),
                    SymbolArtifact.last_accessed_at < cutoff,
                ),
            )
            .limit(batch_size)
            .scalar_subquery()
        )
        result = await self.session.execute(
            delete(SymbolArtifact)
            .where(SymbolArtifact.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
