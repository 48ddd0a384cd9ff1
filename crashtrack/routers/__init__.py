"""HTTP routers for the crash analytics API."""
