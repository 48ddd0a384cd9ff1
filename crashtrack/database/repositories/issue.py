"""
Repository for crash issues.

Counter and status updates are single SQL statements so concurrent
ingestion never loses an increment or applies a transition twice.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.crash_types import IssueStatus
from crashtrack.database.models.issue import CrashIssue
from crashtrack.database.models.issue_person import CrashIssuePerson
from crashtrack.database.repositories.base import BaseRepository
from crashtrack.utils.time_utils import utc_now


class CrashIssueRepository(BaseRepository[CrashIssue]):
    """Repository for managing crash issues."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CrashIssue)

    async def get_by_fingerprint(self, project_id: str, fingerprint: str) -> Optional[CrashIssue]:
        result = await self.session.execute(
            select(CrashIssue)
            .where(CrashIssue.project_id == project_id, CrashIssue.fingerprint == fingerprint)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_fresh(self, issue_id: str) -> Optional[CrashIssue]:
        """Load an issue, overwriting any stale copy held by the session."""
        result = await self.session.execute(
            select(CrashIssue)
            .where(CrashIssue.id == issue_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert_if_absent(self, values: Dict[str, Any]) -> bool:
        """
        Insert a new issue unless one already exists for its fingerprint.

        Returns:
            True if this call created the issue
        """
        return await self.insert_ignore(values, ("project_id", "fingerprint"))

    async def mark_regressed(self, issue_id: str, release: Optional[str]) -> bool:
        """
        Move a resolved issue to regressed.

        Only succeeds while the issue is still resolved, so exactly one of
        several concurrent events performs the transition.

        Returns:
            True if the transition happened
        """
        now = utc_now()
        result = await self.session.execute(
            update(CrashIssue)
            .where(
                CrashIssue.id == issue_id,
                CrashIssue.status == IssueStatus.RESOLVED.value,
            )
            .values(
                status=IssueStatus.REGRESSED.value,
                times_regressed=CrashIssue.times_regressed + 1,
                last_regressed_at=now,
                regressed_in_release=release,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_event(self, issue_id: str, timestamp: datetime) -> None:
        """Increment ``event_count`` and advance ``last_seen``."""
        await self.session.execute(
            update(CrashIssue)
            .where(CrashIssue.id == issue_id)
            .values(
                event_count=CrashIssue.event_count + 1,
                last_seen=case(
                    (CrashIssue.last_seen < timestamp, timestamp),
                    else_=CrashIssue.last_seen,
                ),
                first_seen=case(
                    (CrashIssue.first_seen > timestamp, timestamp),
                    else_=CrashIssue.first_seen,
                ),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )

    async def add_person(self, issue_id: str, person_key: str) -> bool:
        """
        Record that a person hit this issue, bumping ``user_count`` the
        first time only.

        Returns:
            True if the person was new to the issue
        """
        stmt_values = {"issue_id": issue_id, "person_key": person_key, "first_seen": utc_now()}
        person_repo = BaseRepository(self.session, CrashIssuePerson)
        inserted = await person_repo.insert_ignore(stmt_values, ("issue_id", "person_key"))
        if inserted:
            await self.session.execute(
                update(CrashIssue)
                .where(CrashIssue.id == issue_id)
                .values(user_count=CrashIssue.user_count + 1)
                .execution_options(synchronize_session=False)
            )
        return inserted

    async def transition(
        self,
        issue_id: str,
        values: Dict[str, Any],
        from_statuses: Optional[Sequence[IssueStatus]] = None,
        exclude_statuses: Optional[Sequence[IssueStatus]] = None,
    ) -> bool:
        """
        Conditionally update an issue.

        Args:
            issue_id: Issue id
            values: Columns to set
            from_statuses: Only update when the current status is one of these
            exclude_statuses: Only update when the current status is none of these

        Returns:
            True if a row changed
        """
        conditions = [CrashIssue.id == issue_id]
        if from_statuses is not None:
            conditions.append(CrashIssue.status.in_([s.value for s in from_statuses]))
        if exclude_statuses is not None:
            conditions.append(CrashIssue.status.not_in([s.value for s in exclude_statuses]))

        result = await self.session.execute(
            update(CrashIssue)
            .where(*conditions)
            .values(**values, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_project(
        self,
        project_id: str,
        status: Optional[IssueStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CrashIssue]:
        """
        List issues for a project, most recently seen first.

        Args:
            project_id: Project id
            status: Optional status filter
            limit: Maximum number of issues to return
            offset: Number of issues to skip
        """
        query = select(CrashIssue).where(CrashIssue.project_id == project_id)
        if status is not None:
            query = query.where(CrashIssue.status == status.value)
        query = query.order_by(CrashIssue.last_seen.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_project(self, project_id: str, status: Optional[IssueStatus] = None) -> int:
        query = select(func.count()).select_from(CrashIssue).where(CrashIssue.project_id == project_id)
        if status is not None:
            query = query.where(CrashIssue.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def delete_issue(self, issue_id: str) -> bool:
        """
        Delete an issue and its person memberships.

        Events stay in place with their issue link cleared.

        Returns:
            True if the issue existed
        """
        await self.session.execute(
            update(CrashEvent)
            .where(CrashEvent.issue_id == issue_id)
            .values(issue_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(CrashIssuePerson).where(CrashIssuePerson.issue_id == issue_id)
        )
        result = await self.session.execute(
            delete(CrashIssue)
            .where(CrashIssue.id == issue_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
