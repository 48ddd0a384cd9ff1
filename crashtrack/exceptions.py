"""
Domain exceptions raised by the CrashTrack services.

The HTTP layer maps them to status codes in
``crashtrack.middleware.error_handler``.
"""
from typing import Any, Dict, Optional


class CrashTrackError(Exception):
    """Base class for service errors."""

    status_code = 500
    error_type = "crashtrack_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EventValidationError(CrashTrackError):
    """An incoming event is malformed or exceeds a size limit."""

    status_code = 400
    error_type = "validation_error"

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = code


class ArtifactValidationError(CrashTrackError):
    """An uploaded artifact was rejected."""

    status_code = 400
    error_type = "artifact_validation_error"


class ProjectValidationError(CrashTrackError):
    status_code = 400
    error_type = "validation_error"


class ProjectNotFoundError(CrashTrackError):
    status_code = 404
    error_type = "project_not_found"

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}", {"project_id": project_id})
        self.project_id = project_id


class IssueNotFoundError(CrashTrackError):
    status_code = 404
    error_type = "issue_not_found"

    def __init__(self, issue_id: str):
        super().__init__(f"Issue not found: {issue_id}", {"issue_id": issue_id})
        self.issue_id = issue_id


class ArtifactNotFoundError(CrashTrackError):
    status_code = 404
    error_type = "artifact_not_found"

    def __init__(self, artifact_id: str):
        super().__init__(f"Artifact not found: {artifact_id}", {"artifact_id": artifact_id})
        self.artifact_id = artifact_id


class ProjectConflictError(CrashTrackError):
    status_code = 409
    error_type = "project_conflict"


class StorageUnavailableError(CrashTrackError):
    """
    The datastore failed or timed out.

    Ingestion callers should retry the same event later.
    """

    status_code = 503
    error_type = "storage_unavailable"
    retryable = True
    retry_after_seconds = 5
