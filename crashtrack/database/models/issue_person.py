"""
Membership of a person in an issue, used for ``user_count``.
"""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from crashtrack.database.connection import Base
from crashtrack.utils.time_utils import utc_now


class CrashIssuePerson(Base):
    """One row per (issue, person key) pair ever observed."""

    __tablename__ = "crash_issue_persons"

    issue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("crash_issues.id", ondelete="CASCADE"), primary_key=True
    )
    # Resolved person id, or the distinct id when none was resolved
    person_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self) -> str:
        return f"<CrashIssuePerson(issue='{self.issue_id[:8]}...', person='{self.person_key}')>"
