"""
Router for crash issues.

Lifecycle endpoints are idempotent: repeating a transition returns the
issue unchanged and does not notify subscribers again.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from crashtrack.database.models.crash_types import IssueStatus
from crashtrack.models.base import APIBaseModel, UTCDatetime
from crashtrack.routers.dependencies import get_issue_service
from crashtrack.services.issue_service import IssueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash", tags=["Crash Issues"])


# Request/Response Models


class IssueResponse(APIBaseModel):
    id: str
    project_id: str
    short_id: str
    fingerprint: str
    title: str
    culprit: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="issue_metadata")
    status: IssueStatus
    level: str
    priority: str
    event_count: int
    user_count: int
    first_seen: UTCDatetime
    last_seen: UTCDatetime
    resolved_at: Optional[UTCDatetime] = None
    resolved_by: Optional[str] = None
    resolved_in_release: Optional[str] = None
    times_regressed: int
    last_regressed_at: Optional[UTCDatetime] = None
    regressed_in_release: Optional[str] = None
    assigned_to: Optional[str] = None


class IssueListResponse(BaseModel):
    total: int
    issues: List[IssueResponse]


class EventResponse(APIBaseModel):
    id: str
    issue_id: Optional[str] = None
    person_id: Optional[str] = None
    distinct_id: str
    exception_type: str
    exception_value: str
    stacktrace: Dict[str, Any]
    raw_stacktrace: Optional[Dict[str, Any]] = None
    release: Optional[str] = None
    dist: Optional[str] = None
    environment: str
    platform: str
    server_name: Optional[str] = None
    tags: Dict[str, Any] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)
    contexts: Dict[str, Any] = Field(default_factory=dict)
    active_flags: Dict[str, Any] = Field(default_factory=dict)
    breadcrumbs: List[Dict[str, Any]] = Field(default_factory=list)
    fingerprint: str
    timestamp: UTCDatetime
    received_at: UTCDatetime


class ResolveRequest(BaseModel):
    resolved_by: Optional[str] = Field(None, max_length=200)
    release: Optional[str] = Field(None, max_length=200, description="Release the fix ships in")


class AssignRequest(BaseModel):
    assignee: Optional[str] = Field(None, max_length=200, description="None clears the assignment")


# Endpoints


@router.get("/projects/{project_id}/issues", response_model=IssueListResponse)
async def list_issues(
    project_id: str,
    status: Optional[IssueStatus] = Query(None, description="Only issues in this status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IssueService = Depends(get_issue_service),
):
    """List a project's issues, most recently seen first."""
    issues = await service.list_issues(project_id, status, limit, offset)
    total = await service.count_issues(project_id)
    return IssueListResponse(
        total=total,
        issues=[IssueResponse.model_validate(issue) for issue in issues],
    )


@router.get("/issues/{issue_id}", response_model=IssueResponse)
async def get_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.get_issue(issue_id)
    return IssueResponse.model_validate(issue)


@router.get("/issues/{issue_id}/events", response_model=List[EventResponse])
async def list_issue_events(
    issue_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IssueService = Depends(get_issue_service),
):
    """Events of an issue, newest first."""
    events = await service.list_events(issue_id, limit, offset)
    return [EventResponse.model_validate(event) for event in events]


@router.post("/issues/{issue_id}/resolve", response_model=IssueResponse)
async def resolve_issue(
    issue_id: str,
    body: Optional[ResolveRequest] = None,
    service: IssueService = Depends(get_issue_service),
):
    body = body or ResolveRequest()
    issue = await service.resolve(issue_id, resolved_by=body.resolved_by, release=body.release)
    return IssueResponse.model_validate(issue)


@router.post("/issues/{issue_id}/unresolve", response_model=IssueResponse)
async def unresolve_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.unresolve(issue_id)
    return IssueResponse.model_validate(issue)


@router.post("/issues/{issue_id}/ignore", response_model=IssueResponse)
async def ignore_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.ignore(issue_id)
    return IssueResponse.model_validate(issue)


@router.post("/issues/{issue_id}/unignore", response_model=IssueResponse)
async def unignore_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.unignore(issue_id)
    return IssueResponse.model_validate(issue)


@router.post("/issues/{issue_id}/assign", response_model=IssueResponse)
async def assign_issue(
    issue_id: str,
    body: AssignRequest,
    service: IssueService = Depends(get_issue_service),
):
    issue = await service.assign(issue_id, body.assignee)
    return IssueResponse.model_validate(issue)


@router.delete("/issues/{issue_id}", status_code=204)
async def delete_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
):
    await service.delete(issue_id)
