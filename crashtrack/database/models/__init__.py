"""
SQLAlchemy models for CrashTrack.
"""
from crashtrack.database.models.crash_event import CrashEvent
from crashtrack.database.models.crash_types import (
    ArtifactType,
    BreadcrumbLevel,
    FingerprintMatchType,
    IssueLevel,
    IssuePriority,
    IssueStatus,
    Platform,
)
from crashtrack.database.models.issue import CrashIssue
from crashtrack.database.models.issue_person import CrashIssuePerson
from crashtrack.database.models.project import CrashProject
from crashtrack.database.models.symbol_artifact import SymbolArtifact

__all__ = [
    "CrashEvent",
    "CrashIssue",
    "CrashIssuePerson",
    "CrashProject",
    "SymbolArtifact",
    "ArtifactType",
    "BreadcrumbLevel",
    "FingerprintMatchType",
    "IssueLevel",
    "IssuePriority",
    "IssueStatus",
    "Platform",
]
