"""
Pydantic models for incoming crash events and project rules.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from crashtrack.database.models.crash_types import (
    BreadcrumbLevel,
    FingerprintMatchType,
    IssueLevel,
    Platform,
)
from crashtrack.utils.time_utils import ensure_utc, utc_now


class Frame(BaseModel):
    """A single stack frame. Line numbers are 1-indexed, columns 0-indexed."""

    function: Optional[str] = None
    module: Optional[str] = None
    filename: Optional[str] = None
    abs_path: Optional[str] = None
    lineno: Optional[int] = Field(default=None, ge=0)
    colno: Optional[int] = Field(default=None, ge=0)
    context_line: Optional[str] = None
    pre_context: List[str] = Field(default_factory=list)
    post_context: List[str] = Field(default_factory=list)
    in_app: bool = False
    instruction_addr: Optional[str] = None
    symbol_addr: Optional[str] = None


class Stacktrace(BaseModel):
    """Frames ordered innermost first."""

    frames: List[Frame] = Field(default_factory=list)

    def in_app_frames(self) -> List[Frame]:
        return [frame for frame in self.frames if frame.in_app]


class Breadcrumb(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    category: Optional[str] = None
    message: Optional[str] = None
    level: BreadcrumbLevel = BreadcrumbLevel.INFO
    data: Dict[str, Any] = Field(default_factory=dict)


class CaptureRequest(BaseModel):
    """Crash event as sent by an SDK."""

    distinct_id: str = Field(..., min_length=1, max_length=200)
    person_id: Optional[str] = Field(default=None, max_length=200)
    exception_type: str = Field(..., min_length=1)
    exception_value: str
    stacktrace: Stacktrace = Field(default_factory=Stacktrace)
    environment: str = Field(default="production", max_length=64)
    platform: Platform = Platform.JAVASCRIPT
    timestamp: datetime = Field(default_factory=utc_now)
    level: IssueLevel = IssueLevel.ERROR

    release: Optional[str] = None
    dist: Optional[str] = Field(default=None, max_length=64)
    server_name: Optional[str] = Field(default=None, max_length=200)
    tags: Dict[str, str] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)
    contexts: Dict[str, Any] = Field(default_factory=dict)
    active_flags: Dict[str, Any] = Field(default_factory=dict)
    breadcrumbs: List[Breadcrumb] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("release", "dist")
    @classmethod
    def empty_as_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class FingerprintRule(BaseModel):
    """
    Project override for grouping.

    ``pattern`` is a case-sensitive glob (``*``, ``?``, ``[...]``).
    """

    match_type: FingerprintMatchType
    pattern: str = Field(..., min_length=1, max_length=500)
    fingerprint: List[str] = Field(..., min_length=1)
