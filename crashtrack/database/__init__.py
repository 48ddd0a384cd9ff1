"""
Database module for CrashTrack.

Provides SQLAlchemy async database connection, models, and repositories.
"""
from crashtrack.database.connection import (
    Base,
    close_db,
    get_engine,
    get_session,
    get_session_maker,
    init_db,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session",
    "get_session_maker",
    "init_db",
    "close_db",
]
