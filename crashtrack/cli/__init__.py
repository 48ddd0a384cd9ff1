"""Command line client for the CrashTrack API."""
