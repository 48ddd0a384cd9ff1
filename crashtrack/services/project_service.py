"""
Crash project management.
"""
import logging
import re
from typing import Callable, List, Optional

from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_types import Platform
from crashtrack.database.models.project import CrashProject
from crashtrack.database.repositories.project import CrashProjectRepository
from crashtrack.exceptions import ProjectConflictError, ProjectNotFoundError, ProjectValidationError
from crashtrack.models.crash_models import FingerprintRule

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{2,49}$")


class ProjectService:
    """Creates projects and manages their fingerprint rules."""

    def __init__(self, session_factory: Callable = get_session):
        self.session_factory = session_factory

    async def create_project(
        self,
        org_id: str,
        name: str,
        slug: str,
        platform: Platform = Platform.JAVASCRIPT,
        fingerprint_rules: Optional[List[FingerprintRule]] = None,
    ) -> CrashProject:
        """
        Create a project.

        Raises:
            ProjectValidationError: Invalid slug
            ProjectConflictError: Slug already used in the organization
        """
        if not SLUG_PATTERN.match(slug):
            raise ProjectValidationError(
                "slug must be 3-50 characters: a lowercase letter followed by a-z, 0-9, '-' or '_'",
            )

        async with self.session_factory() as session:
            repo = CrashProjectRepository(session)
            if await repo.get_by_slug(org_id, slug) is not None:
                raise ProjectConflictError(f"Project slug '{slug}' already exists")
            project = await repo.create(
                CrashProject(
                    org_id=org_id,
                    name=name,
                    slug=slug,
                    platform=platform.value,
                    fingerprint_rules=[
                        rule.model_dump(mode="json") for rule in fingerprint_rules or []
                    ],
                    issue_counter=0,
                )
            )
        logger.info(f"Created crash project {slug} ({project.id[:8]})")
        return project

    async def get_project(self, project_id: str) -> CrashProject:
        async with self.session_factory() as session:
            project = await CrashProjectRepository(session).get_by_id(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def list_projects(self, org_id: str) -> List[CrashProject]:
        async with self.session_factory() as session:
            return await CrashProjectRepository(session).list_for_org(org_id)

    async def set_fingerprint_rules(
        self, project_id: str, rules: List[FingerprintRule]
    ) -> CrashProject:
        """Replace a project's fingerprint rules. Order is preserved."""
        async with self.session_factory() as session:
            repo = CrashProjectRepository(session)
            project = await repo.get_by_id(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            project = await repo.set_fingerprint_rules(
                project, [rule.model_dump(mode="json") for rule in rules]
            )
        logger.info(f"Project {project.slug}: {len(rules)} fingerprint rules")
        return project

    async def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        platform: Optional[Platform] = None,
    ) -> CrashProject:
        """
        Update a project's name and/or platform. Fields left as None are kept.

        Raises:
            ProjectValidationError: Empty name
            ProjectNotFoundError: Unknown project
        """
        values = {}
        if name is not None:
            if not name.strip():
                raise ProjectValidationError("Project name cannot be empty")
            values["name"] = name.strip()
        if platform is not None:
            values["platform"] = platform.value

        async with self.session_factory() as session:
            repo = CrashProjectRepository(session)
            project = await repo.get_by_id(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            if values:
                project = await repo.update_fields(project, values)
        logger.info(f"Updated crash project {project.slug}: {sorted(values)}")
        return project

    async def delete_project(self, project_id: str) -> None:
        """Delete a project together with its issues, events and artifacts."""
        async with self.session_factory() as session:
            deleted = await CrashProjectRepository(session).delete_project(project_id)
        if not deleted:
            raise ProjectNotFoundError(project_id)
        logger.info(f"🗑️ Crash project {project_id[:8]} deleted")
