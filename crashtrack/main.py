import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from crashtrack import __version__
from crashtrack.config.settings import get_settings
from crashtrack.database.connection import close_db, init_db
from crashtrack.middleware.error_handler import error_handler_middleware, setup_error_handlers
from crashtrack.middleware.request_id import RequestIDMiddleware
from crashtrack.services.artifact_service import ArtifactService
from crashtrack.services.change_notifier import ChangeNotifier, SubscriberRegistry
from crashtrack.services.ingestion_service import IngestionService
from crashtrack.services.issue_service import IssueService
from crashtrack.services.project_service import ProjectService
from crashtrack.services.retention_service import RetentionService
from crashtrack.services.symbolication_service import SymbolicationService
from crashtrack.symbolication.cache import SourceMapCache

logger = logging.getLogger("crashtrack.main")


def build_services(app: FastAPI) -> None:
    """Create the per-application services and attach them to ``app.state``."""
    settings = get_settings()
    logger.debug(f"Settings: {settings.to_dict()}")

    notifier = ChangeNotifier(
        SubscriberRegistry(),
        buffer_size=settings.notifier_buffer_size,
        heartbeat_interval=settings.heartbeat_interval_seconds,
    )
    cache = SourceMapCache(settings.sourcemap_cache_size)
    symbolication_service = SymbolicationService(
        cache,
        timeout_seconds=settings.symbolication_timeout_seconds,
        context_lines=settings.source_context_lines,
    )
    issue_service = IssueService(notifier)

    app.state.notifier = notifier
    app.state.sourcemap_cache = cache
    app.state.symbolication_service = symbolication_service
    app.state.issue_service = issue_service
    app.state.ingestion_service = IngestionService(
        symbolication_service, issue_service, notifier, settings=settings
    )
    app.state.artifact_service = ArtifactService()
    app.state.project_service = ProjectService()
    app.state.retention_service = RetentionService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    build_services(app)
    await app.state.notifier.start()
    logger.info(f"🚀 CrashTrack API {__version__} started")
    try:
        yield
    finally:
        await app.state.notifier.stop()
        await close_db()
        logger.info("CrashTrack API stopped")


app = FastAPI(
    title="CrashTrack API",
    description="Crash event ingestion, symbolication and issue tracking",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration."""
    start_time = time.time()
    path = request.url.path
    method = request.method

    # Streams stay open for minutes and health checks are noise
    skip_logging = path.endswith("/stream") or path == "/health"

    if not skip_logging:
        logger.info(f"🔔 {method} {path}")

    try:
        response = await call_next(request)

        process_time = time.time() - start_time
        status_code = response.status_code

        if status_code < 400:
            status_str = f"✅ {status_code}"
        elif status_code < 500:
            status_str = f"⚠️ {status_code}"
        else:
            status_str = f"❌ {status_code}"

        if not skip_logging:
            logger.info(f"🏁 {method} {path} - {status_str} - {process_time:.3f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"💥 {method} {path} - Exception: {str(e)} - Time: {process_time:.4f}s")
        raise


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(error_handler_middleware)

# Added last so the request id is set before the other middlewares run
app.add_middleware(RequestIDMiddleware)

setup_error_handlers(app)

from crashtrack.routers import (  # noqa: E402
    artifacts_router,
    events_router,
    issues_router,
    maintenance_router,
    projects_router,
    stream_router,
)

app.include_router(projects_router.router)
app.include_router(events_router.router)
app.include_router(artifacts_router.router)
app.include_router(issues_router.router)
app.include_router(stream_router.router)
app.include_router(maintenance_router.router)


@app.get("/")
async def root():
    return {"message": "CrashTrack API", "version": __version__}


@app.get("/health")
async def health_check():
    return {"status": "ok"}
