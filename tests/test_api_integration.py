"""
API integration tests.

Runs the FastAPI application (lifespan included) against a temporary
SQLite database:
- Project management
- Event capture with source map symbolication
- Issue lifecycle over HTTP
- Error responses (400, 404, 409, 503)
- Maintenance endpoints
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from crashtrack.exceptions import StorageUnavailableError
from crashtrack.main import app


@pytest.fixture
def client(database_env):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def project_id(client):
    response = client.post(
        "/api/crash/projects",
        json={"org_id": "org-1", "name": "Web App", "slug": "webapp", "platform": "javascript"},
    )
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def event_body(make_event):
    def build(**overrides):
        return make_event(**overrides).model_dump(mode="json")

    return build


def upload_map(client, project_id, source_map, release="1.0.0", name="app.min.js.map"):
    return client.post(
        f"/api/crash/projects/{project_id}/artifacts",
        data={"release": release},
        files=[("files", (name, source_map, "application/json"))],
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_request_id_header(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8


class TestProjects:
    """Tests for /api/crash/projects."""

    def test_create_and_get(self, client, project_id):
        response = client.get(f"/api/crash/projects/{project_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["slug"] == "webapp"
        assert data["issue_counter"] == 0

    def test_duplicate_slug(self, client, project_id):
        response = client.post(
            "/api/crash/projects", json={"org_id": "org-1", "name": "Again", "slug": "webapp"}
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "project_conflict"

    def test_invalid_slug(self, client):
        response = client.post(
            "/api/crash/projects", json={"org_id": "org-1", "name": "Bad", "slug": "No Spaces"}
        )
        assert response.status_code == 400

    def test_unknown_project(self, client):
        response = client.get("/api/crash/projects/missing")
        assert response.status_code == 404
        assert response.json()["error_type"] == "project_not_found"

    def test_update_project(self, client, project_id):
        response = client.patch(f"/api/crash/projects/{project_id}", json={"name": "Storefront"})
        assert response.status_code == 200
        assert response.json()["name"] == "Storefront"
        assert response.json()["slug"] == "webapp"

        empty = client.patch(f"/api/crash/projects/{project_id}", json={"name": ""})
        assert empty.status_code == 400

    def test_delete_project(self, client, project_id, event_body):
        capture = client.post(f"/api/crash/projects/{project_id}/events", json=event_body()).json()

        assert client.delete(f"/api/crash/projects/{project_id}").status_code == 204
        assert client.get(f"/api/crash/projects/{project_id}").status_code == 404
        assert client.get(f"/api/crash/issues/{capture['issue_id']}").status_code == 404
        assert client.delete(f"/api/crash/projects/{project_id}").status_code == 404

    def test_fingerprint_rules(self, client, project_id, event_body):
        response = client.put(
            f"/api/crash/projects/{project_id}/fingerprint-rules",
            json={"rules": [{"match_type": "exception_type", "pattern": "*", "fingerprint": ["all"]}]},
        )
        assert response.status_code == 200
        assert response.json()["fingerprint_rules"][0]["fingerprint"] == ["all"]

        a = client.post(f"/api/crash/projects/{project_id}/events", json=event_body(exception_type="A"))
        b = client.post(f"/api/crash/projects/{project_id}/events", json=event_body(exception_type="B"))
        assert a.json()["issue_id"] == b.json()["issue_id"]


class TestSymbolicatedCapture:
    """Source map upload followed by event capture."""

    def test_frame_is_resolved(self, client, project_id, app_source_map, event_body):
        upload = upload_map(client, project_id, app_source_map)
        assert upload.status_code == 201
        assert upload.json()["uploaded_count"] == 1
        assert upload.json()["artifacts"][0]["artifact_type"] == "source_map"

        response = client.post(f"/api/crash/projects/{project_id}/events", json=event_body(release="1.0.0"))
        assert response.status_code == 201
        capture = response.json()
        assert capture["is_new_issue"] is True
        assert capture["short_id"] == "WEBA-1"

        events = client.get(f"/api/crash/issues/{capture['issue_id']}/events").json()
        frame = events[0]["stacktrace"]["frames"][0]
        assert (frame["filename"], frame["lineno"], frame["colno"]) == ("app.ts", 42, 3)
        assert frame["function"] == "loadUser"
        assert frame["context_line"] == "line 42"
        assert len(frame["pre_context"]) == 5
        assert events[0]["raw_stacktrace"]["frames"][0]["filename"] == "app.min.js"

    def test_unknown_release_keeps_frames(self, client, project_id, app_source_map, event_body):
        upload_map(client, project_id, app_source_map, release="1.0.0")

        body = event_body(release="2.0.0")
        response = client.post(f"/api/crash/projects/{project_id}/events", json=body)
        assert response.status_code == 201

        events = client.get(f"/api/crash/issues/{response.json()['issue_id']}/events").json()
        assert events[0]["stacktrace"]["frames"] == body["stacktrace"]["frames"]

    def test_reupload_is_deduplicated(self, client, project_id, app_source_map):
        upload_map(client, project_id, app_source_map)
        response = upload_map(client, project_id, app_source_map)
        assert response.json()["existing_count"] == 1
        assert response.json()["uploaded_count"] == 0

        listed = client.get(f"/api/crash/projects/{project_id}/artifacts", params={"release": "1.0.0"})
        assert len(listed.json()) == 1

    def test_upload_requires_release(self, client, project_id, app_source_map):
        response = client.post(
            f"/api/crash/projects/{project_id}/artifacts",
            files=[("files", ("app.min.js.map", app_source_map, "application/json"))],
        )
        assert response.status_code == 400

    def test_invalid_map_rejected(self, client, project_id):
        response = upload_map(client, project_id, b'{"version": 2, "mappings": ""}')
        assert response.status_code == 400
        assert response.json()["error_type"] == "artifact_validation_error"

    def test_get_artifact(self, client, project_id, app_source_map):
        artifact_id = upload_map(client, project_id, app_source_map).json()["artifacts"][0]["id"]

        response = client.get(f"/api/crash/projects/{project_id}/artifacts/{artifact_id}")
        assert response.status_code == 200
        assert response.json()["name"] == "app.min.js.map"
        assert response.json()["release"] == "1.0.0"

        missing = client.get(f"/api/crash/projects/{project_id}/artifacts/missing")
        assert missing.status_code == 404
        assert missing.json()["error_type"] == "artifact_not_found"

    def test_delete_artifact(self, client, project_id, app_source_map):
        artifact_id = upload_map(client, project_id, app_source_map).json()["artifacts"][0]["id"]
        response = client.delete(f"/api/crash/projects/{project_id}/artifacts/{artifact_id}")
        assert response.status_code == 204
        assert client.get(f"/api/crash/projects/{project_id}/artifacts").json() == []


class TestCapture:
    """Tests for event capture errors and batches."""

    def test_limit_violation(self, client, project_id, event_body):
        response = client.post(
            f"/api/crash/projects/{project_id}/events", json=event_body(exception_type="E" * 1000)
        )
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "exception_type_too_long"
        assert data["error_type"] == "validation_error"

    def test_malformed_event(self, client, project_id):
        response = client.post(f"/api/crash/projects/{project_id}/events", json={"distinct_id": "u"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"
        assert response.json()["details"]

    def test_unknown_project(self, client, event_body):
        response = client.post("/api/crash/projects/missing/events", json=event_body())
        assert response.status_code == 404

    def test_storage_failure_is_retryable(self, client, project_id, event_body, monkeypatch):
        monkeypatch.setattr(
            client.app.state.ingestion_service,
            "ingest",
            AsyncMock(side_effect=StorageUnavailableError("Timed out storing event")),
        )
        response = client.post(f"/api/crash/projects/{project_id}/events", json=event_body())
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error_type"] == "storage_unavailable"

    def test_batch(self, client, project_id, event_body):
        response = client.post(
            f"/api/crash/projects/{project_id}/events/batch",
            json=[event_body(), {"distinct_id": "u"}, event_body(distinct_id="user-2")],
        )
        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["success_count"], data["error_count"]) == (3, 2, 1)
        assert data["results"][1]["error_code"] == "invalid_event"
        assert data["results"][0]["result"]["issue_id"] == data["results"][2]["result"]["issue_id"]


class TestIssueLifecycle:
    """Tests for /api/crash/issues."""

    def test_resolve_and_regress(self, client, project_id, event_body):
        capture = client.post(f"/api/crash/projects/{project_id}/events", json=event_body()).json()
        issue_url = f"/api/crash/issues/{capture['issue_id']}"

        resolved = client.post(f"{issue_url}/resolve", json={"resolved_by": "dev", "release": "1.0.1"})
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"
        # Repeating the transition is harmless
        assert client.post(f"{issue_url}/resolve").json()["status"] == "resolved"

        again = client.post(f"/api/crash/projects/{project_id}/events", json=event_body(release="1.0.2")).json()
        assert again["is_regression"] is True

        issue = client.get(issue_url).json()
        assert issue["status"] == "regressed"
        assert issue["times_regressed"] == 1
        assert issue["event_count"] == 2
        assert issue["metadata"]["exception_type"] == "TypeError"

        listed = client.get(f"/api/crash/projects/{project_id}/issues", params={"status": "regressed"}).json()
        assert [i["id"] for i in listed["issues"]] == [capture["issue_id"]]
        assert listed["total"] == 1

    def test_ignore_assign_delete(self, client, project_id, event_body):
        capture = client.post(f"/api/crash/projects/{project_id}/events", json=event_body()).json()
        issue_url = f"/api/crash/issues/{capture['issue_id']}"

        assert client.post(f"{issue_url}/ignore").json()["status"] == "ignored"
        assert client.post(f"{issue_url}/unignore").json()["status"] == "unresolved"
        assert client.post(f"{issue_url}/assign", json={"assignee": "alex"}).json()["assigned_to"] == "alex"

        assert client.delete(issue_url).status_code == 204
        assert client.get(issue_url).status_code == 404

    def test_unknown_issue(self, client):
        response = client.post("/api/crash/issues/missing/resolve")
        assert response.status_code == 404
        assert response.json()["error_type"] == "issue_not_found"

    def test_invalid_status_filter(self, client, project_id):
        response = client.get(f"/api/crash/projects/{project_id}/issues", params={"status": "closed"})
        assert response.status_code == 400


class TestMaintenance:
    """Tests for /api/crash/maintenance."""

    def test_cleanup(self, client, project_id, event_body):
        client.post(f"/api/crash/projects/{project_id}/events", json=event_body())
        response = client.delete("/api/crash/maintenance/cleanup", params={"days_to_keep": 30})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["events_deleted"] == 0

    def test_cleanup_rejects_zero_days(self, client):
        response = client.delete("/api/crash/maintenance/cleanup", params={"days_to_keep": 0})
        assert response.status_code == 400

    def test_stats(self, client):
        data = client.get("/api/crash/maintenance/stats").json()
        assert "hits" in data["sourcemap_cache"]
        assert data["notifier"]["subscribers"] == 0
