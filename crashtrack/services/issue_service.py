"""
Issue aggregation and lifecycle.

``aggregate`` runs inside the caller's ingestion transaction and relies
on the ``(project_id, fingerprint)`` unique constraint: a losing
concurrent insert simply re-reads the winner's row and updates it.
Lifecycle operations are idempotent and notify subscribers only when
the stored state actually changed.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.crash_types import IssuePriority, IssueStatus
from crashtrack.database.models.issue import CrashIssue
from crashtrack.database.models.project import CrashProject
from crashtrack.database.repositories.crash_event import CrashEventRepository
from crashtrack.database.repositories.issue import CrashIssueRepository
from crashtrack.database.repositories.project import CrashProjectRepository
from crashtrack.exceptions import IssueNotFoundError, ProjectNotFoundError, StorageUnavailableError
from crashtrack.models.crash_models import CaptureRequest
from crashtrack.services.change_notifier import ChangeNotifier, NotificationType
from crashtrack.services.fingerprint_service import Fingerprint
from crashtrack.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 3
TITLE_MAX_LENGTH = 100


@dataclass
class AggregationResult:
    issue: CrashIssue
    is_new: bool
    is_regression: bool


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def build_title(exception_type: str, exception_value: str) -> str:
    """``Type: first line of message`` with the message cut to 100 characters."""
    lines = exception_value.strip().splitlines()
    first_line = lines[0] if lines else ""
    if not first_line:
        return exception_type
    return f"{exception_type}: {truncate(first_line, TITLE_MAX_LENGTH)}"


def build_issue_values(
    project: CrashProject, event: CaptureRequest, fingerprint: Fingerprint, number: int
) -> Dict[str, Any]:
    """Column values for a newly created issue."""
    in_app = event.stacktrace.in_app_frames()
    top = in_app[0] if in_app else None
    return {
        "id": str(uuid4()),
        "org_id": project.org_id,
        "project_id": project.id,
        "short_id": f"{project.short_id_prefix}-{number}",
        "fingerprint": fingerprint.hash,
        "title": build_title(event.exception_type, event.exception_value),
        "culprit": top.function if top else None,
        "issue_metadata": {
            "exception_type": event.exception_type,
            "exception_value": truncate(event.exception_value, 1000),
            "filename": top.filename if top else None,
            "function": top.function if top else None,
        },
        "status": IssueStatus.UNRESOLVED.value,
        "level": event.level.value,
        "priority": IssuePriority.MEDIUM.value,
        "event_count": 1,
        "user_count": 0,
        "first_seen": event.timestamp,
        "last_seen": event.timestamp,
        "times_regressed": 0,
        "created_at": utc_now(),
        "updated_at": utc_now(),
    }


def issue_summary(issue: CrashIssue) -> Dict[str, Any]:
    """Notification payload describing an issue."""
    return {
        "issue_id": issue.id,
        "short_id": issue.short_id,
        "title": issue.title,
        "status": issue.status,
        "level": issue.level,
        "event_count": issue.event_count,
        "times_regressed": issue.times_regressed,
        "assigned_to": issue.assigned_to,
    }


class IssueService:
    """Find-or-create of issues and their status transitions."""

    def __init__(
        self,
        notifier: Optional[ChangeNotifier] = None,
        session_factory: Callable = get_session,
    ):
        self.notifier = notifier
        self.session_factory = session_factory

    def _publish(self, issue: CrashIssue, notification_type: NotificationType, **extra: Any) -> None:
        if self.notifier is not None:
            self.notifier.publish(issue.project_id, notification_type, {**issue_summary(issue), **extra})

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def aggregate(
        self,
        session: AsyncSession,
        project: CrashProject,
        event: CaptureRequest,
        fingerprint: Fingerprint,
    ) -> AggregationResult:
        """
        Route one event to its issue, creating the issue when needed.

        Runs in the caller's transaction. Counts are updated in SQL; a
        resolved issue becomes regressed.

        Raises:
            StorageUnavailableError: The insert kept conflicting without the
                existing row becoming visible
        """
        repo = CrashIssueRepository(session)
        person_key = event.person_id or event.distinct_id

        for attempt in range(1, MAX_CONFLICT_RETRIES + 1):
            issue = await repo.get_by_fingerprint(project.id, fingerprint.hash)

            if issue is None:
                number = await CrashProjectRepository(session).next_issue_number(project.id)
                values = build_issue_values(project, event, fingerprint, number)
                if await repo.insert_if_absent(values):
                    await repo.add_person(values["id"], person_key)
                    issue = await repo.get_fresh(values["id"])
                    logger.info(f"🆕 New issue {issue.short_id}: {issue.title}")
                    return AggregationResult(issue, is_new=True, is_regression=False)

                logger.info(
                    f"Issue insert conflict for fingerprint {fingerprint.hash[:12]} "
                    f"(attempt {attempt}/{MAX_CONFLICT_RETRIES}), re-reading"
                )
                continue

            is_regression = await repo.mark_regressed(issue.id, event.release)
            await repo.record_event(issue.id, event.timestamp)
            await repo.add_person(issue.id, person_key)
            issue = await repo.get_fresh(issue.id)
            if is_regression:
                logger.warning(
                    f"🔁 Issue {issue.short_id} regressed in release {event.release} "
                    f"(times_regressed={issue.times_regressed})"
                )
            return AggregationResult(issue, is_new=False, is_regression=is_regression)

        raise StorageUnavailableError(
            f"Could not resolve issue for fingerprint {fingerprint.hash[:12]} "
            f"after {MAX_CONFLICT_RETRIES} attempts"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_issue(self, issue_id: str) -> CrashIssue:
        async with self.session_factory() as session:
            issue = await CrashIssueRepository(session).get_by_id(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    async def list_issues(
        self,
        project_id: str,
        status: Optional[IssueStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CrashIssue]:
        async with self.session_factory() as session:
            if await CrashProjectRepository(session).get_by_id(project_id) is None:
                raise ProjectNotFoundError(project_id)
            return await CrashIssueRepository(session).list_for_project(project_id, status, limit, offset)

    async def count_issues(self, project_id: str) -> int:
        async with self.session_factory() as session:
            return await CrashIssueRepository(session).count_for_project(project_id)

    async def list_events(self, issue_id: str, limit: int = 50, offset: int = 0) -> List[CrashEvent]:
        async with self.session_factory() as session:
            if await CrashIssueRepository(session).get_by_id(issue_id) is None:
                raise IssueNotFoundError(issue_id)
            return await CrashEventRepository(session).list_for_issue(issue_id, limit, offset)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _transition(
        self,
        issue_id: str,
        values: Dict[str, Any],
        from_statuses: Optional[List[IssueStatus]] = None,
        exclude_statuses: Optional[List[IssueStatus]] = None,
    ) -> Tuple[CrashIssue, bool]:
        async with self.session_factory() as session:
            repo = CrashIssueRepository(session)
            changed = await repo.transition(issue_id, values, from_statuses, exclude_statuses)
            issue = await repo.get_fresh(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue, changed

    async def resolve(
        self,
        issue_id: str,
        resolved_by: Optional[str] = None,
        release: Optional[str] = None,
    ) -> CrashIssue:
        """
        Mark an issue resolved. Resolving a resolved issue changes nothing.

        Args:
            issue_id: Issue id
            resolved_by: Who resolved it
            release: Release the fix ships in
        """
        issue, changed = await self._transition(
            issue_id,
            {
                "status": IssueStatus.RESOLVED.value,
                "resolved_at": utc_now(),
                "resolved_by": resolved_by,
                "resolved_in_release": release,
            },
            exclude_statuses=[IssueStatus.RESOLVED],
        )
        if changed:
            logger.info(f"✅ Issue {issue.short_id} resolved by {resolved_by or 'unknown'}")
            self._publish(issue, NotificationType.ISSUE_RESOLVED, resolved_by=resolved_by)
        return issue

    async def unresolve(self, issue_id: str) -> CrashIssue:
        """Reopen an issue, clearing its resolution."""
        issue, changed = await self._transition(
            issue_id,
            {
                "status": IssueStatus.UNRESOLVED.value,
                "resolved_at": None,
                "resolved_by": None,
                "resolved_in_release": None,
            },
            exclude_statuses=[IssueStatus.UNRESOLVED],
        )
        if changed:
            logger.info(f"Issue {issue.short_id} reopened")
        return issue

    async def ignore(self, issue_id: str) -> CrashIssue:
        issue, changed = await self._transition(
            issue_id,
            {"status": IssueStatus.IGNORED.value},
            exclude_statuses=[IssueStatus.IGNORED],
        )
        if changed:
            logger.info(f"Issue {issue.short_id} ignored")
        return issue

    async def unignore(self, issue_id: str) -> CrashIssue:
        """Move an ignored issue back to unresolved; other states are untouched."""
        issue, changed = await self._transition(
            issue_id,
            {"status": IssueStatus.UNRESOLVED.value},
            from_statuses=[IssueStatus.IGNORED],
        )
        if changed:
            logger.info(f"Issue {issue.short_id} no longer ignored")
        return issue

    async def assign(self, issue_id: str, assignee: Optional[str]) -> CrashIssue:
        """Assign an issue, or clear the assignment with ``None``."""
        async with self.session_factory() as session:
            repo = CrashIssueRepository(session)
            issue = await repo.get_fresh(issue_id)
            if issue is None:
                raise IssueNotFoundError(issue_id)
            changed = issue.assigned_to != assignee
            if changed:
                await repo.transition(issue_id, {"assigned_to": assignee})
                issue = await repo.get_fresh(issue_id)

        if changed:
            logger.info(f"Issue {issue.short_id} assigned to {assignee}")
            self._publish(issue, NotificationType.ISSUE_ASSIGNED)
        return issue

    async def delete(self, issue_id: str) -> None:
        """Delete an issue. Its events remain without an issue link."""
        async with self.session_factory() as session:
            deleted = await CrashIssueRepository(session).delete_issue(issue_id)
        if not deleted:
            raise IssueNotFoundError(issue_id)
        logger.info(f"🗑️ Issue {issue_id[:8]} deleted")
