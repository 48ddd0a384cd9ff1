"""
Configuration settings for CrashTrack using Pydantic Settings.

Values are read from environment variables (or a ``.env`` file) and
validated on load.
"""
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class CrashTrackSettings(BaseSettings):
    """
    Settings for the ingestion service.

    Uses Pydantic Settings to load and validate configuration from
    environment variables with proper type checking and defaults.
    """

    # Database
    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full SQLAlchemy async URL; overrides the POSTGRES_* settings",
    )
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_user: str = Field(default="crashtrack", alias="POSTGRES_USER")
    postgres_password: str = Field(default="crashtrack", alias="POSTGRES_PASSWORD")
    postgres_database: str = Field(default="crashtrack", alias="POSTGRES_DATABASE")
    postgres_pool_max_size: int = Field(
        default=10,
        alias="POSTGRES_POOL_MAX_SIZE",
        description="Connection pool size for the main engine",
    )
    db_timeout_seconds: float = Field(
        default=10.0,
        alias="DB_TIMEOUT_SECONDS",
        description="Per-statement database timeout (asyncpg command timeout, SQLite busy timeout)",
    )

    # Event validation limits
    max_exception_type_length: int = Field(default=256, alias="MAX_EXCEPTION_TYPE_LENGTH")
    max_exception_value_length: int = Field(default=8192, alias="MAX_EXCEPTION_VALUE_LENGTH")
    max_event_size_bytes: int = Field(
        default=1024 * 1024,
        alias="MAX_EVENT_SIZE_BYTES",
        description="Maximum serialized size of a single event",
    )
    max_tags: int = Field(default=100, alias="MAX_TAGS")
    max_tag_key_length: int = Field(default=200, alias="MAX_TAG_KEY_LENGTH")
    max_tag_value_length: int = Field(default=1000, alias="MAX_TAG_VALUE_LENGTH")
    max_breadcrumbs: int = Field(default=100, alias="MAX_BREADCRUMBS")
    max_frames: int = Field(default=250, alias="MAX_FRAMES")
    max_release_length: int = Field(default=200, alias="MAX_RELEASE_LENGTH")
    max_batch_size: int = Field(default=100, alias="MAX_BATCH_SIZE")

    # Artifacts and symbolication
    max_artifact_size_bytes: int = Field(
        default=50 * 1024 * 1024,
        alias="MAX_ARTIFACT_SIZE_BYTES",
        description="Largest accepted uploaded artifact",
    )
    source_context_lines: int = Field(default=5, alias="SOURCE_CONTEXT_LINES")
    sourcemap_cache_size: int = Field(
        default=256,
        alias="SOURCEMAP_CACHE_SIZE",
        description="Number of parsed source maps kept in memory",
    )
    symbolication_timeout_seconds: float = Field(
        default=5.0,
        alias="SYMBOLICATION_TIMEOUT_SECONDS",
        description="Budget for symbolicating one stack trace; raw frames are kept on timeout",
    )

    # Real-time notifications
    notifier_buffer_size: int = Field(
        default=100,
        alias="NOTIFIER_BUFFER_SIZE",
        description="Per-subscriber message buffer; the oldest message is dropped on overflow",
    )
    heartbeat_interval_seconds: float = Field(default=30.0, alias="HEARTBEAT_INTERVAL_SECONDS")

    # Retention
    retention_days: int = Field(default=90, alias="RETENTION_DAYS")

    # API configuration
    crashtrack_api_url: str = Field(
        default="http://localhost:8001/api/crash",
        alias="CRASHTRACK_API_URL",
        description="CrashTrack API base URL used by the CLI",
    )
    crashtrack_host: str = Field(default="0.0.0.0", alias="CRASHTRACK_HOST")
    crashtrack_port: int = Field(default=8001, alias="CRASHTRACK_PORT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_prefix": "",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary, hiding the database password."""
        data = self.model_dump()
        data["postgres_password"] = "***"
        return data


# Global settings instance
_settings: Optional[CrashTrackSettings] = None


def get_settings() -> CrashTrackSettings:
    """
    Get global settings instance (singleton pattern).

    Returns:
        Validated CrashTrackSettings instance
    """
    global _settings
    if _settings is None:
        _settings = CrashTrackSettings()
    return _settings


def reset_settings() -> None:
    """Reset global settings (useful for testing)."""
    global _settings
    _settings = None
