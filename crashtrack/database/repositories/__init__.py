"""
Repositories for database access.
"""
from crashtrack.database.repositories.base import BaseRepository
from crashtrack.database.repositories.crash_event import CrashEventRepository
from crashtrack.database.repositories.issue import CrashIssueRepository
from crashtrack.database.repositories.project import CrashProjectRepository
from crashtrack.database.repositories.symbol_artifact import SymbolArtifactRepository

__all__ = [
    "BaseRepository",
    "CrashEventRepository",
    "CrashIssueRepository",
    "CrashProjectRepository",
    "SymbolArtifactRepository",
]
