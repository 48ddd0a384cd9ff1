"""
Enumerations shared by the crash models.

Stored as plain strings (``.value``) so the columns stay portable.
"""
from enum import Enum


class IssueStatus(str, Enum):
    """Lifecycle state of an issue."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    IGNORED = "ignored"
    REGRESSED = "regressed"


class IssueLevel(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssuePriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Platform(str, Enum):
    """Platforms accepted on incoming events."""

    JAVASCRIPT = "javascript"
    NODE = "node"
    RUST = "rust"

    @property
    def uses_source_maps(self) -> bool:
        return self in (Platform.JAVASCRIPT, Platform.NODE)


class ArtifactType(str, Enum):
    SOURCE_MAP = "source_map"
    MINIFIED_SOURCE = "minified_source"


class FingerprintMatchType(str, Enum):
    """Event field a fingerprint rule pattern is matched against."""

    EXCEPTION_TYPE = "exception_type"
    EXCEPTION_MESSAGE = "exception_message"
    MODULE = "module"
    FUNCTION = "function"


class BreadcrumbLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
