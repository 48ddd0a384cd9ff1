"""
Router for maintenance operations.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from crashtrack.routers.dependencies import get_notifier, get_retention_service
from crashtrack.services.change_notifier import ChangeNotifier
from crashtrack.services.retention_service import RetentionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash/maintenance", tags=["Crash Maintenance"])


@router.delete("/cleanup")
async def cleanup(
    days_to_keep: Optional[int] = Query(
        None, ge=1, le=3650, description="Days of data to keep (default: RETENTION_DAYS)"
    ),
    service: RetentionService = Depends(get_retention_service),
):
    """
    Delete events and unused artifacts older than ``days_to_keep`` days.

    Issues and their counts are kept.
    """
    result = await service.run_cleanup(days_to_keep)
    return {"status": "ok", **result.to_dict()}


@router.get("/stats")
async def stats(
    request: Request,
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Source map cache and notifier counters."""
    return {
        "sourcemap_cache": request.app.state.sourcemap_cache.get_stats(),
        "notifier": notifier.get_stats(),
    }
