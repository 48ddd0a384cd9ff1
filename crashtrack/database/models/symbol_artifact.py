"""
Uploaded debug artifacts (source maps and minified sources).
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from crashtrack.database.connection import Base
from crashtrack.database.models.crash_types import ArtifactType
from crashtrack.utils.time_utils import utc_now


class SymbolArtifact(Base):
    """
    Debug artifact scoped to (project, release, dist, name).

    ``dist`` is stored as an empty string when absent so the unique
    constraint also covers artifacts without a distribution.
    """

    __tablename__ = "symbol_artifacts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    org_id: Mapped[str] = mapped_column(String(36))
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("crash_projects.id", ondelete="CASCADE")
    )
    release: Mapped[str] = mapped_column(String(200))
    dist: Mapped[str] = mapped_column(String(64), default="")
    name: Mapped[str] = mapped_column(String(1000))
    artifact_type: Mapped[str] = mapped_column(String(20), default=ArtifactType.SOURCE_MAP.value)

    # Loaded on demand through awaitable_attrs
    data: Mapped[bytes] = mapped_column(LargeBinary, deferred=True)
    size_bytes: Mapped[int] = mapped_column(Integer)
    sha256: Mapped[str] = mapped_column(String(64), index=True)

    # sourceMappingURL comment found in a minified source
    source_map_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    sources_content: Mapped[bool] = mapped_column(Boolean, default=False)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index(
            "uq_symbol_artifacts_scope_name",
            "project_id",
            "release",
            "dist",
            "name",
            unique=True,
        ),
        Index("idx_symbol_artifacts_uploaded_at", "uploaded_at"),
    )

    @property
    def dist_or_none(self) -> Optional[str]:
        return self.dist or None

    def __repr__(self) -> str:
        return (
            f"<SymbolArtifact(id='{self.id[:8]}...', release='{self.release}', "
            f"name='{self.name}', type='{self.artifact_type}')>"
        )
