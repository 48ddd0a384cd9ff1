"""
FastAPI dependencies that hand out the services built at startup.

The services live on ``app.state`` so each application instance owns
its own notifier, cache and subscriber registry.
"""
from fastapi import Request

from crashtrack.services.artifact_service import ArtifactService
from crashtrack.services.change_notifier import ChangeNotifier
from crashtrack.services.ingestion_service import IngestionService
from crashtrack.services.issue_service import IssueService
from crashtrack.services.project_service import ProjectService
from crashtrack.services.retention_service import RetentionService


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.project_service


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def get_issue_service(request: Request) -> IssueService:
    return request.app.state.issue_service


def get_artifact_service(request: Request) -> ArtifactService:
    return request.app.state.artifact_service


def get_retention_service(request: Request) -> RetentionService:
    return request.app.state.retention_service


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier
