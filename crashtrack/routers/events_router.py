"""
Router for crash event capture.

SDKs post single events or batches here. Validation failures return
400 and nothing is stored; storage failures return 503 with a
Retry-After header so the client can resend the same event.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from crashtrack.models.crash_models import CaptureRequest
from crashtrack.routers.dependencies import get_ingestion_service
from crashtrack.services.ingestion_service import CaptureResult, IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash/projects", tags=["Crash Events"])


# Request/Response Models


class CaptureResponse(BaseModel):
    event_id: str
    issue_id: str
    short_id: str
    is_new_issue: bool
    is_regression: bool

    @classmethod
    def from_result(cls, result: CaptureResult) -> "CaptureResponse":
        return cls(
            event_id=result.event_id,
            issue_id=result.issue_id,
            short_id=result.short_id,
            is_new_issue=result.is_new_issue,
            is_regression=result.is_regression,
        )


class BatchItemResponse(BaseModel):
    index: int
    success: bool
    result: Optional[CaptureResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False


class BatchCaptureResponse(BaseModel):
    total: int
    success_count: int
    error_count: int
    results: List[BatchItemResponse]


# Endpoints


@router.post("/{project_id}/events", response_model=CaptureResponse, status_code=201)
async def capture_event(
    project_id: str,
    event: CaptureRequest,
    service: IngestionService = Depends(get_ingestion_service),
):
    """Capture a single crash event."""
    result = await service.ingest(project_id, event)
    return CaptureResponse.from_result(result)


@router.post("/{project_id}/events/batch", response_model=BatchCaptureResponse)
async def capture_batch(
    project_id: str,
    events: List[Dict[str, Any]] = Body(..., description="Events to capture"),
    service: IngestionService = Depends(get_ingestion_service),
):
    """
    Capture a batch of events.

    Each item is validated and stored on its own; the response lists a
    result per item in request order.
    """
    batch = await service.ingest_batch(project_id, events)
    return BatchCaptureResponse(
        total=batch.total,
        success_count=batch.success_count,
        error_count=batch.error_count,
        results=[
            BatchItemResponse(
                index=item.index,
                success=item.success,
                result=CaptureResponse.from_result(item.result) if item.result else None,
                error=item.error,
                error_code=item.error_code,
                retryable=item.retryable,
            )
            for item in batch.results
        ],
    )
