"""
Repository for crash events.
"""
from datetime import datetime
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.repositories.base import BaseRepository


class CrashEventRepository(BaseRepository[CrashEvent]):
    """Repository for persisted crash events."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CrashEvent)

    async def list_for_issue(
        self, issue_id: str, limit: int = 50, offset: int = 0
    ) -> List[CrashEvent]:
        """
        Get the events of an issue, newest first.

        Args:
            issue_id: Issue id
            limit: Maximum number of events to return
            offset: Number of events to skip
        """
        result = await self.session.execute(
            select(CrashEvent)
            .where(CrashEvent.issue_id == issue_id)
            .order_by(CrashEvent.timestamp.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_issue(self, issue_id: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CrashEvent).where(CrashEvent.issue_id == issue_id)
        )
        return result.scalar_one()

    async def delete_before(self, cutoff: datetime, batch_size: int = 1000) -> int:
        """
        Delete up to ``batch_size`` events older than ``cutoff``.

        Args:
            cutoff: Events with a timestamp before this are removed
            batch_size: Maximum rows deleted by this call

        Returns:
            Number of deleted events
        """
        ids = (
            select(CrashEvent.id)
            .where(CrashEvent.timestamp < cutoff)
            .limit(batch_size)
            .scalar_subquery()
        )
        result = await self.session.execute(
            delete(CrashEvent)
            .where(CrashEvent.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
