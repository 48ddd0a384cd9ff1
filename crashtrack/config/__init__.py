"""Configuration: settings and logging setup."""
from crashtrack.config.settings import CrashTrackSettings, get_settings, reset_settings

__all__ = ["CrashTrackSettings", "get_settings", "reset_settings"]
