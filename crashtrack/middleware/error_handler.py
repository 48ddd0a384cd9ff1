"""
Error handling for the CrashTrack API.

Every error response has the same JSON shape (``ErrorDetail``). Domain
errors carry their own status code; storage failures add a
``Retry-After`` header so SDKs back off and resend.
"""
import hashlib
import json
import logging
import sys
import time
import traceback
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crashtrack.exceptions import CrashTrackError, EventValidationError, StorageUnavailableError

logger = logging.getLogger("crashtrack.middleware.error_handler")


class ErrorDetail:
    """Standardized error details."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        error_id: Optional[str] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.code = code
        self.details = details
        self.error_id = error_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary."""
        error_dict = {
            "status_code": self.status_code,
            "message": self.message,
            "error_type": self.error_type,
        }

        if self.code:
            error_dict["code"] = self.code

        if self.details:
            error_dict["details"] = self.details

        if self.error_id:
            error_dict["error_id"] = self.error_id

        return error_dict


def _error_id(request: Request) -> str:
    return hashlib.md5(f"{time.time()}-{request.url.path}".encode()).hexdigest()[:8]


def format_stack_trace(stack_trace: str) -> str:
    """Indent a stack trace for log output."""
    return "\n".join(f"  │ {line}" for line in stack_trace.split("\n") if line.strip())


def _log_exception(prefix: str, request: Request, exc: BaseException) -> None:
    stack_trace = "".join(traceback.format_exception(*sys.exc_info()))
    if not stack_trace.strip() or stack_trace.strip() == "NoneType: None":
        stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"{prefix}: {request.method} {request.url.path} - {exc.__class__.__name__}: {exc}\n"
        f"╭─ Stack Trace ─────────────────────────╮\n"
        f"{format_stack_trace(stack_trace)}\n"
        f"╰───────────────────────────────────────╯"
    )


def crashtrack_error_response(exc: CrashTrackError, error_id: Optional[str] = None) -> JSONResponse:
    headers = None
    if isinstance(exc, StorageUnavailableError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    detail = ErrorDetail(
        status_code=exc.status_code,
        message=exc.message,
        error_type=exc.error_type,
        code=exc.code if isinstance(exc, EventValidationError) else None,
        details=exc.details or None,
        error_id=error_id,
    )
    return JSONResponse(status_code=exc.status_code, content=detail.to_dict(), headers=headers)


def _internal_error_response(exc: Exception, error_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorDetail(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
            error_type=exc.__class__.__name__,
            error_id=error_id,
        ).to_dict(),
    )


async def error_handler_middleware(request: Request, call_next):
    """
    Middleware that turns unhandled exceptions into a JSON 500 response.
    """
    try:
        return await call_next(request)
    except Exception as exc:
        error_id = _error_id(request)
        _log_exception(f"❌ ERROR#{error_id}", request, exc)
        return _internal_error_response(exc, error_id)


def setup_error_handlers(app):
    """
    Configure exception handlers for the FastAPI application.
    """

    @app.exception_handler(CrashTrackError)
    async def crashtrack_exception_handler(request: Request, exc: CrashTrackError):
        """Handler for domain errors."""
        error_id = _error_id(request)
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.error_type.upper()}#{error_id}: {request.method} {request.url.path} - {exc.message}")
        else:
            logger.warning(f"⚠️ {exc.error_type.upper()}#{error_id}: {exc.status_code} - {exc.message}")
        return crashtrack_error_response(exc, error_id)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handler for HTTP exceptions."""
        error_id = _error_id(request)
        if exc.status_code >= 500:
            logger.error(f"❌ HTTP#{error_id}: {request.method} {request.url.path} - {exc.status_code} - {exc.detail}")
        else:
            logger.warning(f"⚠️ HTTP#{error_id}: {exc.status_code} - {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                status_code=exc.status_code,
                message=str(exc.detail),
                error_type="http_exception",
                error_id=error_id,
            ).to_dict(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handler for request validation errors, reported as 400."""
        error_id = _error_id(request)
        validation_errors = jsonable_encoder(exc.errors())
        logger.warning(
            f"⚠️ VALID#{error_id}: Validation error on {request.method} {request.url.path}\n"
            f"╭─ Validation Errors ───────────────────╮\n"
            f"  │ {json.dumps(validation_errors, default=str)[:2000]}\n"
            f"╰───────────────────────────────────────╯"
        )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorDetail(
                status_code=status.HTTP_400_BAD_REQUEST,
                message="Request validation failed",
                error_type="validation_error",
                details=validation_errors,
                error_id=error_id,
            ).to_dict(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handler for unhandled exceptions."""
        error_id = _error_id(request)
        _log_exception(f"❌ EXC#{error_id}", request, exc)
        return _internal_error_response(exc, error_id)
