"""
Router for crash projects.

Projects own the fingerprint rules, the short id counter and every
issue, event and artifact below them.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from crashtrack.database.models.crash_types import Platform
from crashtrack.models.base import APIBaseModel, UTCDatetime
from crashtrack.models.crash_models import FingerprintRule
from crashtrack.routers.dependencies import get_project_service
from crashtrack.services.project_service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash/projects", tags=["Crash Projects"])


# Request/Response Models


class CreateProjectRequest(BaseModel):
    """Request body for creating a project."""

    org_id: str = Field(..., min_length=1, max_length=36, description="Owning organization")
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., description="Lowercase identifier, unique within the organization")
    platform: Platform = Platform.JAVASCRIPT
    fingerprint_rules: List[FingerprintRule] = Field(default_factory=list)


class UpdateProjectRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, max_length=200)
    platform: Optional[Platform] = None


class FingerprintRulesRequest(BaseModel):
    """Ordered fingerprint rules; the first match wins."""

    rules: List[FingerprintRule] = Field(default_factory=list)


class ProjectResponse(APIBaseModel):
    id: str
    org_id: str
    name: str
    slug: str
    platform: str
    fingerprint_rules: List[dict]
    issue_counter: int
    created_at: UTCDatetime
    updated_at: Optional[UTCDatetime] = None


# Endpoints


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: CreateProjectRequest,
    service: ProjectService = Depends(get_project_service),
):
    """Create a crash project."""
    project = await service.create_project(
        org_id=body.org_id,
        name=body.name,
        slug=body.slug,
        platform=body.platform,
        fingerprint_rules=body.fingerprint_rules,
    )
    return ProjectResponse.model_validate(project)


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    org_id: str = Query(..., description="Organization to list projects for"),
    service: ProjectService = Depends(get_project_service),
):
    projects = await service.list_projects(org_id)
    return [ProjectResponse.model_validate(project) for project in projects]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    service: ProjectService = Depends(get_project_service),
):
    project = await service.get_project(project_id)
    return ProjectResponse.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    body: UpdateProjectRequest,
    service: ProjectService = Depends(get_project_service),
):
    project = await service.update_project(project_id, name=body.name, platform=body.platform)
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    service: ProjectService = Depends(get_project_service),
):
    """Delete the project and everything recorded under it."""
    await service.delete_project(project_id)


@router.put("/{project_id}/fingerprint-rules", response_model=ProjectResponse)
async def set_fingerprint_rules(
    project_id: str,
    body: FingerprintRulesRequest,
    service: ProjectService = Depends(get_project_service),
):
    """
    Replace the project's fingerprint rules.

    Only events ingested afterwards are grouped with the new rules;
    existing issues keep their fingerprints.
    """
    project = await service.set_fingerprint_rules(project_id, body.rules)
    return ProjectResponse.model_validate(project)
