"""
Crash event ingestion pipeline.

validate -> symbolicate -> fingerprint -> aggregate + persist (one
transaction) -> notify. Nothing is written for an event that fails
validation, and notifications are queued only after the commit.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from crashtrack.config.settings import CrashTrackSettings, get_settings
from crashtrack.database.connection import get_session
from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.project import CrashProject
from crashtrack.database.repositories.project import CrashProjectRepository
from crashtrack.exceptions import (
    CrashTrackError,
    EventValidationError,
    ProjectNotFoundError,
    StorageUnavailableError,
)
from crashtrack.models.crash_models import CaptureRequest
from crashtrack.services.change_notifier import ChangeNotifier, NotificationType
from crashtrack.services.fingerprint_service import Fingerprint, compute_fingerprint, parse_rules
from crashtrack.services.issue_service import IssueService, issue_summary
from crashtrack.services.symbolication_service import SymbolicationResult, SymbolicationService

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    event_id: str
    issue_id: str
    short_id: str
    is_new_issue: bool
    is_regression: bool


@dataclass
class BatchItemResult:
    index: int
    success: bool
    result: Optional[CaptureResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False


@dataclass
class BatchResult:
    results: List[BatchItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def error_count(self) -> int:
        return self.total - self.success_count


def validate_event(event: CaptureRequest, settings: CrashTrackSettings) -> None:
    """
    Check an event against the configured size limits.

    Raises:
        EventValidationError: With a machine readable ``code``
    """
    if len(event.exception_type) > settings.max_exception_type_length:
        raise EventValidationError(
            "exception_type_too_long",
            f"exception_type exceeds {settings.max_exception_type_length} characters",
        )
    if len(event.exception_value) > settings.max_exception_value_length:
        raise EventValidationError(
            "exception_value_too_long",
            f"exception_value exceeds {settings.max_exception_value_length} characters",
        )
    if event.release is not None and len(event.release) > settings.max_release_length:
        raise EventValidationError(
            "release_too_long", f"release exceeds {settings.max_release_length} characters"
        )
    if len(event.tags) > settings.max_tags:
        raise EventValidationError("too_many_tags", f"At most {settings.max_tags} tags are allowed")
    for key, value in event.tags.items():
        if len(key) > settings.max_tag_key_length:
            raise EventValidationError(
                "tag_key_too_long", f"Tag key exceeds {settings.max_tag_key_length} characters",
                {"tag": key[:50]},
            )
        if len(value) > settings.max_tag_value_length:
            raise EventValidationError(
                "tag_value_too_long", f"Tag value exceeds {settings.max_tag_value_length} characters",
                {"tag": key[:50]},
            )
    if len(event.breadcrumbs) > settings.max_breadcrumbs:
        raise EventValidationError(
            "too_many_breadcrumbs", f"At most {settings.max_breadcrumbs} breadcrumbs are allowed"
        )
    if len(event.stacktrace.frames) > settings.max_frames:
        raise EventValidationError(
            "too_many_frames", f"At most {settings.max_frames} stack frames are allowed"
        )

    size = len(event.model_dump_json().encode("utf-8"))
    if size > settings.max_event_size_bytes:
        raise EventValidationError(
            "event_too_large",
            f"Event is {size} bytes, limit is {settings.max_event_size_bytes}",
            {"size_bytes": size},
        )


class IngestionService:
    """Ingests crash events for a project."""

    def __init__(
        self,
        symbolication_service: SymbolicationService,
        issue_service: IssueService,
        notifier: Optional[ChangeNotifier] = None,
        session_factory: Callable = get_session,
        settings: Optional[CrashTrackSettings] = None,
    ):
        self.symbolication_service = symbolication_service
        self.issue_service = issue_service
        self.notifier = notifier
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def _load_project(self, project_id: str) -> CrashProject:
        try:
            async with self.session_factory() as session:
                project = await CrashProjectRepository(session).get_by_id(project_id)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Could not load project: {e.__class__.__name__}") from e
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def ingest(
        self, project_id: str, event: CaptureRequest, project: Optional[CrashProject] = None
    ) -> CaptureResult:
        """
        Ingest a single event.

        Args:
            project_id: Project the event belongs to
            event: Validated request body
            project: Already loaded project, to skip the lookup

        Returns:
            CaptureResult with the issue it was grouped into

        Raises:
            EventValidationError: The event breaks a limit; nothing is stored
            ProjectNotFoundError: Unknown project
            StorageUnavailableError: The datastore failed; safe to retry
        """
        validate_event(event, self.settings)
        if project is None:
            project = await self._load_project(project_id)

        symbolication = await self.symbolication_service.symbolicate(
            project.id, event.platform, event.stacktrace, event.release, event.dist
        )
        processed = event.model_copy(update={"stacktrace": symbolication.stacktrace})
        fingerprint = compute_fingerprint(processed, parse_rules(project.fingerprint_rules))

        try:
            # Bounded per statement by the driver timeout, never mid-commit
            result, issue = await self._persist(project, event, processed, symbolication, fingerprint)
        except asyncio.TimeoutError as e:
            logger.error(f"Storing event for project {project.id[:8]} timed out")
            raise StorageUnavailableError("Timed out storing event") from e
        except SQLAlchemyError as e:
            logger.error(f"Storing event for project {project.id[:8]} failed: {e}")
            raise StorageUnavailableError(f"Could not store event: {e.__class__.__name__}") from e

        if self.notifier is not None:
            if result.is_new_issue:
                self.notifier.publish(project.id, NotificationType.ISSUE_NEW, issue_summary(issue))
            elif result.is_regression:
                self.notifier.publish(
                    project.id,
                    NotificationType.ISSUE_REGRESSED,
                    {**issue_summary(issue), "release": event.release},
                )

        logger.debug(
            f"Event {result.event_id[:8]} -> {result.short_id} "
            f"(new={result.is_new_issue}, regression={result.is_regression})"
        )
        return result

    async def _persist(
        self,
        project: CrashProject,
        original: CaptureRequest,
        processed: CaptureRequest,
        symbolication: SymbolicationResult,
        fingerprint: Fingerprint,
    ):
        async with self.session_factory() as session:
            aggregation = await self.issue_service.aggregate(session, project, processed, fingerprint)

            crash_event = CrashEvent(
                org_id=project.org_id,
                project_id=project.id,
                issue_id=aggregation.issue.id,
                person_id=processed.person_id,
                distinct_id=processed.distinct_id,
                exception_type=processed.exception_type,
                exception_value=processed.exception_value,
                stacktrace=processed.stacktrace.model_dump(mode="json"),
                raw_stacktrace=(
                    original.stacktrace.model_dump(mode="json") if symbolication.attempted else None
                ),
                release=processed.release,
                dist=processed.dist,
                environment=processed.environment,
                platform=processed.platform.value,
                server_name=processed.server_name,
                tags=processed.tags,
                extra=processed.extra,
                contexts=processed.contexts,
                active_flags=processed.active_flags,
                breadcrumbs=[b.model_dump(mode="json") for b in processed.breadcrumbs],
                fingerprint=fingerprint.hash,
                timestamp=processed.timestamp,
            )
            session.add(crash_event)
            await session.flush()

            result = CaptureResult(
                event_id=crash_event.id,
                issue_id=aggregation.issue.id,
                short_id=aggregation.issue.short_id,
                is_new_issue=aggregation.is_new,
                is_regression=aggregation.is_regression,
            )
        return result, aggregation.issue

    async def ingest_batch(
        self, project_id: str, events: Sequence[Union[CaptureRequest, dict]]
    ) -> BatchResult:
        """
        Ingest events one by one, reporting a result per item.

        A failing item does not stop the batch. Cancelling the batch stops
        it between items; the item being stored still completes.

        Raises:
            EventValidationError: The batch is larger than allowed
            ProjectNotFoundError: Unknown project
        """
        if len(events) > self.settings.max_batch_size:
            raise EventValidationError(
                "batch_too_large", f"At most {self.settings.max_batch_size} events per batch"
            )
        batch = BatchResult()
        if not events:
            return batch

        project = await self._load_project(project_id)

        for index, raw in enumerate(events):
            try:
                event = raw if isinstance(raw, CaptureRequest) else CaptureRequest.model_validate(raw)
                result = await asyncio.shield(self.ingest(project_id, event, project=project))
                batch.results.append(BatchItemResult(index=index, success=True, result=result))
            except ValidationError as e:
                batch.results.append(
                    BatchItemResult(
                        index=index, success=False, error=_first_validation_message(e),
                        error_code="invalid_event",
                    )
                )
            except EventValidationError as e:
                batch.results.append(
                    BatchItemResult(index=index, success=False, error=e.message, error_code=e.code)
                )
            except CrashTrackError as e:
                batch.results.append(
                    BatchItemResult(
                        index=index,
                        success=False,
                        error=e.message,
                        error_code=e.error_type,
                        retryable=isinstance(e, StorageUnavailableError),
                    )
                )
            except Exception as e:
                logger.exception(f"Batch item {index} for project {project_id[:8]} failed unexpectedly")
                batch.results.append(
                    BatchItemResult(
                        index=index,
                        success=False,
                        error=f"Internal error: {e.__class__.__name__}",
                        error_code="internal_error",
                    )
                )

        logger.info(
            f"📥 Batch for project {project_id[:8]}: "
            f"{batch.success_count}/{batch.total} stored, {batch.error_count} failed"
        )
        return batch


def _first_validation_message(error: ValidationError) -> str:
    details: List[Any] = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
