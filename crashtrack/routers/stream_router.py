"""
Router for live issue notifications over Server-Sent Events.

A client first receives an ``init`` message with the project's issue
count, then one message per notification. The event name is the
notification type (``issue.new``, ``issue.regressed``, ``heartbeat``...).
"""

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from crashtrack.routers.dependencies import get_issue_service, get_notifier, get_project_service
from crashtrack.services.change_notifier import ChangeNotifier
from crashtrack.services.issue_service import IssueService
from crashtrack.services.project_service import ProjectService
from crashtrack.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash/projects", tags=["Crash Stream"])


@router.get("/{project_id}/stream")
async def stream_project(
    project_id: str,
    notifier: ChangeNotifier = Depends(get_notifier),
    issue_service: IssueService = Depends(get_issue_service),
    project_service: ProjectService = Depends(get_project_service),
):
    """Stream issue notifications for a project."""
    # Unknown projects fail before the stream starts
    await project_service.get_project(project_id)

    # Subscribe before counting so nothing published in between is lost
    subscription = notifier.subscribe(project_id)
    try:
        issue_count = await issue_service.count_issues(project_id)
    except Exception:
        notifier.unsubscribe(subscription)
        raise

    async def event_generator() -> AsyncGenerator[dict, None]:
        try:
            yield {
                "event": "init",
                "data": json.dumps({
                    "project_id": project_id,
                    "issue_count": issue_count,
                    "timestamp": utc_now().isoformat(),
                }),
            }
            async for notification in subscription:
                yield {
                    "event": notification.type.value,
                    "data": json.dumps(notification.to_dict(), default=str),
                }
        finally:
            notifier.unsubscribe(subscription)
            logger.debug(f"Stream for project {project_id[:8]} closed")

    return EventSourceResponse(event_generator())
