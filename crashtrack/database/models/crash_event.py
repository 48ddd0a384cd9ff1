"""
Crash event model: one persisted occurrence.

Rows are never updated after insert, except for losing their issue link
when the issue is deleted.
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from crashtrack.database.connection import Base, JSONType
from crashtrack.utils.time_utils import utc_now


class CrashEvent(Base):
    """Single crash occurrence."""

    __tablename__ = "crash_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    org_id: Mapped[str] = mapped_column(String(36))
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("crash_projects.id", ondelete="CASCADE")
    )
    issue_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("crash_issues.id", ondelete="SET NULL"), nullable=True
    )

    # Identity (resolved externally)
    person_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    distinct_id: Mapped[str] = mapped_column(String(200))

    exception_type: Mapped[str] = mapped_column(String(256))
    exception_value: Mapped[str] = mapped_column(Text)
    stacktrace: Mapped[dict] = mapped_column(JSONType)
    raw_stacktrace: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    release: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    dist: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    environment: Mapped[str] = mapped_column(String(64))
    platform: Mapped[str] = mapped_column(String(20))
    server_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    tags: Mapped[dict] = mapped_column(JSONType, default=dict)
    extra: Mapped[dict] = mapped_column(JSONType, default=dict)
    contexts: Mapped[dict] = mapped_column(JSONType, default=dict)
    active_flags: Mapped[dict] = mapped_column(JSONType, default=dict)
    breadcrumbs: Mapped[list] = mapped_column(JSONType, default=list)

    fingerprint: Mapped[str] = mapped_column(String(64))

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_crash_events_issue_timestamp", "issue_id", "timestamp"),
        Index("idx_crash_events_project_timestamp", "project_id", "timestamp"),
        Index("idx_crash_events_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<CrashEvent(id='{self.id[:8]}...', type='{self.exception_type}', "
            f"release='{self.release}')>"
        )
