"""Services module."""
from crashtrack.services.artifact_service import ArtifactService
from crashtrack.services.change_notifier import ChangeNotifier, SubscriberRegistry
from crashtrack.services.ingestion_service import IngestionService
from crashtrack.services.issue_service import IssueService
from crashtrack.services.project_service import ProjectService
from crashtrack.services.retention_service import RetentionService
from crashtrack.services.symbolication_service import SymbolicationService

__all__ = [
    "ArtifactService",
    "ChangeNotifier",
    "SubscriberRegistry",
    "IngestionService",
    "IssueService",
    "ProjectService",
    "RetentionService",
    "SymbolicationService",
]
