"""
Tests for crashtrack/services/project_service.py
"""

import pytest
from sqlalchemy import func, select

from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.crash_types import Platform
from crashtrack.database.models.issue import CrashIssue
from crashtrack.database.models.issue_person import CrashIssuePerson
from crashtrack.database.models.symbol_artifact import SymbolArtifact
from crashtrack.exceptions import (
    IssueNotFoundError,
    ProjectConflictError,
    ProjectNotFoundError,
    ProjectValidationError,
)
from crashtrack.models.crash_models import FingerprintRule
from crashtrack.services.artifact_service import ArtifactService
from crashtrack.services.project_service import ProjectService


@pytest.fixture
def project_service(db):
    return ProjectService()


class TestProjectService:
    """Tests for project management."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, project_service):
        created = await project_service.create_project("org-1", "Mobile", "mobile", Platform.RUST)
        loaded = await project_service.get_project(created.id)

        assert loaded.slug == "mobile"
        assert loaded.platform == "rust"
        assert loaded.issue_counter == 0
        assert loaded.fingerprint_rules == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("slug", ["ab", "Web", "1app", "has space", "x" * 51])
    async def test_invalid_slug(self, project_service, slug):
        with pytest.raises(ProjectValidationError):
            await project_service.create_project("org-1", "Bad", slug)

    @pytest.mark.asyncio
    async def test_slug_unique_per_org(self, project_service):
        await project_service.create_project("org-1", "Web", "web-app")
        with pytest.raises(ProjectConflictError):
            await project_service.create_project("org-1", "Web again", "web-app")
        other = await project_service.create_project("org-2", "Web", "web-app")
        assert other.org_id == "org-2"

    @pytest.mark.asyncio
    async def test_list_projects(self, project_service):
        await project_service.create_project("org-1", "A", "aaa")
        await project_service.create_project("org-1", "B", "bbb")
        await project_service.create_project("org-2", "C", "ccc")

        projects = await project_service.list_projects("org-1")
        assert sorted(p.slug for p in projects) == ["aaa", "bbb"]

    @pytest.mark.asyncio
    async def test_set_fingerprint_rules(self, project_service):
        created = await project_service.create_project("org-1", "Web", "webapp")
        rules = [
            FingerprintRule(match_type="function", pattern="fetch*", fingerprint=["network"]),
            FingerprintRule(match_type="exception_type", pattern="ChunkLoadError", fingerprint=["chunks"]),
        ]

        await project_service.set_fingerprint_rules(created.id, rules)

        loaded = await project_service.get_project(created.id)
        assert [rule["fingerprint"] for rule in loaded.fingerprint_rules] == [["network"], ["chunks"]]

    @pytest.mark.asyncio
    async def test_unknown_project(self, project_service):
        with pytest.raises(ProjectNotFoundError):
            await project_service.get_project("missing")
        with pytest.raises(ProjectNotFoundError):
            await project_service.set_fingerprint_rules("missing", [])

    @pytest.mark.asyncio
    async def test_update_project(self, project_service):
        created = await project_service.create_project("org-1", "Web", "webapp")

        renamed = await project_service.update_project(created.id, name="Web Frontend")
        assert renamed.name == "Web Frontend"
        assert renamed.platform == "javascript"

        moved = await project_service.update_project(created.id, platform=Platform.NODE)
        assert moved.name == "Web Frontend"
        assert moved.platform == "node"

    @pytest.mark.asyncio
    async def test_update_rejects_empty_name(self, project_service):
        created = await project_service.create_project("org-1", "Web", "webapp")
        with pytest.raises(ProjectValidationError):
            await project_service.update_project(created.id, name="  ")
        with pytest.raises(ProjectNotFoundError):
            await project_service.update_project("missing", name="x")


class TestDeleteProject:
    """Tests for removing a project and its data."""

    @pytest.mark.asyncio
    async def test_delete_removes_children(self, ingestion_service, project, app_source_map, make_event):
        await ArtifactService().upload(project.id, "1.0.0", [("app.min.js.map", app_source_map)])
        result = await ingestion_service.ingest(project.id, make_event(release="1.0.0"))
        project_service = ProjectService()

        await project_service.delete_project(project.id)

        with pytest.raises(ProjectNotFoundError):
            await project_service.get_project(project.id)
        async with get_session() as session:
            for model in (CrashEvent, CrashIssue, CrashIssuePerson, SymbolArtifact):
                count = await session.scalar(select(func.count()).select_from(model))
                assert count == 0, model.__name__
        with pytest.raises(IssueNotFoundError):
            await ingestion_service.issue_service.get_issue(result.issue_id)

    @pytest.mark.asyncio
    async def test_delete_keeps_other_projects(self, ingestion_service, project, make_event):
        project_service = ProjectService()
        other = await project_service.create_project("org-1", "API", "apisrv", Platform.NODE)
        kept = await ingestion_service.ingest(other.id, make_event(platform="node"))

        await project_service.delete_project(project.id)

        issue = await ingestion_service.issue_service.get_issue(kept.issue_id)
        assert issue.event_count == 1
        with pytest.raises(ProjectNotFoundError):
            await project_service.delete_project(project.id)
