"""
Pytest configuration and shared fixtures.

Database tests run against a temporary SQLite file (aiosqlite), created
fresh for every test.
"""

import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from crashtrack.config.settings import reset_settings
from crashtrack.database.connection import close_db, init_db
from crashtrack.database.models.crash_types import Platform
from crashtrack.models.crash_models import CaptureRequest, Frame, Stacktrace
from crashtrack.services.change_notifier import ChangeNotifier, SubscriberRegistry
from crashtrack.services.ingestion_service import IngestionService
from crashtrack.services.issue_service import IssueService
from crashtrack.services.project_service import ProjectService
from crashtrack.services.symbolication_service import SymbolicationService
from crashtrack.symbolication import vlq
from crashtrack.symbolication.cache import SourceMapCache


@pytest.fixture
def database_env(tmp_path, monkeypatch):
    """Point the settings at a temporary SQLite database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'crashtrack.db'}")
    reset_settings()
    yield
    reset_settings()


@pytest_asyncio.fixture
async def db(database_env):
    """Create the schema in a fresh database and dispose of it afterwards."""
    await close_db()
    await init_db()
    yield
    await close_db()


@pytest_asyncio.fixture
async def project(db):
    """A JavaScript project with no fingerprint rules."""
    return await ProjectService().create_project(
        org_id="org-1", name="Web App", slug="webapp", platform=Platform.JAVASCRIPT
    )


@pytest.fixture
def notifier():
    return ChangeNotifier(SubscriberRegistry(), buffer_size=100, heartbeat_interval=30.0)


@pytest.fixture
def issue_service(notifier):
    return IssueService(notifier)


@pytest.fixture
def ingestion_service(db, notifier, issue_service):
    symbolication = SymbolicationService(SourceMapCache(16), timeout_seconds=5.0, context_lines=5)
    return IngestionService(symbolication, issue_service, notifier)


def _make_event(
    exception_type: str = "TypeError",
    exception_value: str = "Cannot read properties of undefined (reading 'id')",
    frames: Optional[List[Dict[str, Any]]] = None,
    **overrides: Any,
) -> CaptureRequest:
    """Build a capture request with one in-app frame by default."""
    if frames is None:
        frames = [
            {"function": "loadUser", "module": "app/users", "filename": "app.min.js",
             "lineno": 1, "colno": 10, "in_app": True},
        ]
    data = {
        "distinct_id": "user-1",
        "exception_type": exception_type,
        "exception_value": exception_value,
        "stacktrace": Stacktrace(frames=[Frame(**frame) for frame in frames]),
        **overrides,
    }
    return CaptureRequest(**data)


def _build_source_map(
    segments: List[List[int]],
    sources: Optional[List[str]] = None,
    names: Optional[List[str]] = None,
    sources_content: Optional[List[Optional[str]]] = None,
    **extra: Any,
) -> bytes:
    """
    Encode a single-line source map.

    ``segments`` are absolute [gen_col, source, orig_line, orig_col(, name)]
    values on generated line 0; deltas are computed here.
    """
    previous = [0, 0, 0, 0, 0]
    encoded = []
    for segment in segments:
        deltas = [value - previous[i] for i, value in enumerate(segment)]
        previous[:len(segment)] = segment
        encoded.append(vlq.encode(deltas))
    document = {
        "version": 3,
        "sources": sources or ["app.ts"],
        "names": names or [],
        "mappings": ",".join(encoded),
        **extra,
    }
    if sources_content is not None:
        document["sourcesContent"] = sources_content
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def app_source_map():
    """Maps generated 1:10 of app.min.js to app.ts 42:3."""
    source = "\n".join(f"line {n}" for n in range(1, 61))
    return _build_source_map(
        [[10, 0, 41, 3, 0]],
        sources=["app.ts"],
        names=["loadUser"],
        sources_content=[source],
        file="app.min.js",
    )


@pytest.fixture
def make_event():
    return _make_event


@pytest.fixture
def build_source_map():
    return _build_source_map
