"""
Crash issue model: the aggregate of all events sharing a fingerprint.
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from crashtrack.database.connection import Base, JSONType
from crashtrack.database.models.crash_types import IssueLevel, IssuePriority, IssueStatus
from crashtrack.utils.time_utils import utc_now


class CrashIssue(Base):
    """
    Deduplicated crash issue.

    ``(project_id, fingerprint)`` is unique. Counts only grow; status
    changes go through IssueService.
    """

    __tablename__ = "crash_issues"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    org_id: Mapped[str] = mapped_column(String(36))
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("crash_projects.id", ondelete="CASCADE")
    )

    short_id: Mapped[str] = mapped_column(String(64))
    fingerprint: Mapped[str] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(Text)
    culprit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    issue_metadata: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)

    status: Mapped[str] = mapped_column(String(20), default=IssueStatus.UNRESOLVED.value)
    level: Mapped[str] = mapped_column(String(20), default=IssueLevel.ERROR.value)
    priority: Mapped[str] = mapped_column(String(20), default=IssuePriority.MEDIUM.value)

    event_count: Mapped[int] = mapped_column(Integer, default=0)
    user_count: Mapped[int] = mapped_column(Integer, default=0)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    # Resolution
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    resolved_in_release: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Regression
    times_regressed: Mapped[int] = mapped_column(Integer, default=0)
    last_regressed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    regressed_in_release: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    assigned_to: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("project_id", "fingerprint", name="uq_crash_issues_project_fingerprint"),
        Index("idx_crash_issues_project_status", "project_id", "status"),
        Index("idx_crash_issues_project_last_seen", "project_id", "last_seen"),
        Index("idx_crash_issues_short_id", "project_id", "short_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<CrashIssue(id='{self.id[:8]}...', short_id='{self.short_id}', "
            f"status='{self.status}', events={self.event_count})>"
        )
