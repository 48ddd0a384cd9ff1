import os

import uvicorn

from crashtrack.config.logging_setup import setup_logging
from crashtrack.config.settings import get_settings


def main():
    """Run the API server."""
    setup_logging()
    settings = get_settings()
    host = settings.crashtrack_host
    port = settings.crashtrack_port
    reload = os.environ.get("CRASHTRACK_RELOAD", "").lower() in ("1", "true", "yes")

    print(f"Starting CrashTrack API on http://{host}:{port}")
    print("Press CTRL+C to quit.")

    uvicorn.run(
        "crashtrack.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["crashtrack/"] if reload else None,
        log_config=None,  # Use the configuration loaded above
    )


if __name__ == "__main__":
    main()
