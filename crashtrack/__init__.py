"""CrashTrack: crash report ingestion, grouping and symbolication."""

__version__ = "0.1.0"
