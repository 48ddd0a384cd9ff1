"""
Crash project model.

A project scopes issues, events and artifacts, and carries the
fingerprint rules applied to its events.
"""
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from crashtrack.database.connection import Base, JSONType
from crashtrack.database.models.crash_types import Platform
from crashtrack.utils.time_utils import utc_now


class CrashProject(Base):
    """Crash tracking project."""

    __tablename__ = "crash_projects"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    org_id: Mapped[str] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(50))
    platform: Mapped[str] = mapped_column(String(20), default=Platform.JAVASCRIPT.value)

    # List of FingerprintRule dicts, evaluated in order
    fingerprint_rules: Mapped[List[dict]] = mapped_column(JSONType, default=list)

    # Last allocated short id number (SLUG-N)
    issue_counter: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("org_id", "slug", name="uq_crash_projects_org_slug"),
    )

    @property
    def short_id_prefix(self) -> str:
        return self.slug.upper()[:4]

    def __repr__(self) -> str:
        return f"<CrashProject(id='{self.id[:8]}...', slug='{self.slug}', platform='{self.platform}')>"
