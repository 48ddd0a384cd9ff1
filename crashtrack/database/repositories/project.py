"""
Repository for crash projects.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.issue import CrashIssue
from crashtrack.database.models.issue_person import CrashIssuePerson
from crashtrack.database.models.project import CrashProject
from crashtrack.database.models.symbol_artifact import SymbolArtifact
from crashtrack.database.repositories.base import BaseRepository


class CrashProjectRepository(BaseRepository[CrashProject]):
    """Repository for managing crash projects."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CrashProject)

    async def get_by_slug(self, org_id: str, slug: str) -> Optional[CrashProject]:
        result = await self.session.execute(
            select(CrashProject).where(
                CrashProject.org_id == org_id, CrashProject.slug == slug
            )
        )
        return result.scalar_one_or_none()

    async def list_for_org(self, org_id: str) -> List[CrashProject]:
        result = await self.session.execute(
            select(CrashProject)
            .where(CrashProject.org_id == org_id)
            .order_by(CrashProject.created_at)
        )
        return list(result.scalars().all())

    async def next_issue_number(self, project_id: str) -> int:
        """
        Atomically allocate the next short id number for a project.

        The counter row stays locked until the surrounding transaction
        ends, so two writers never receive the same number.

        Args:
            project_id: Project id

        Returns:
            The newly allocated number (1 for the first issue)
        """
        await self.session.execute(
            update(CrashProject)
            .where(CrashProject.id == project_id)
            .values(issue_counter=CrashProject.issue_counter + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(CrashProject.issue_counter).where(CrashProject.id == project_id)
        )
        return result.scalar_one()

    async def set_fingerprint_rules(self, project: CrashProject, rules: List[dict]) -> CrashProject:
        project.fingerprint_rules = rules
        return await self.update(project)

    async def update_fields(self, project: CrashProject, values: Dict[str, Any]) -> CrashProject:
        for key, value in values.items():
            setattr(project, key, value)
        return await self.update(project)

    async def delete_project(self, project_id: str) -> bool:
        """
        Delete a project with its issues, events and artifacts.

        Children are removed explicitly; SQLite does not enforce the
        foreign key cascades.

        Returns:
            True if the project existed
        """
        issue_ids = select(CrashIssue.id).where(CrashIssue.project_id == project_id)
        await self.session.execute(
            delete(CrashIssuePerson).where(CrashIssuePerson.issue_id.in_(issue_ids))
        )
        for model in (CrashEvent, CrashIssue, SymbolArtifact):
            await self.session.execute(
                delete(model)
                .where(model.project_id == project_id)
                .execution_options(synchronize_session=False)
            )
        result = await self.session.execute(
            delete(CrashProject)
            .where(CrashProject.id == project_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
