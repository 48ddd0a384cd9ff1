"""
Retention cleanup for crash data.

Scheduling is left to an external caller (cron, the maintenance
endpoint or the CLI). Rows are deleted in batches, each in its own
transaction, so ingestion is never blocked for long. Issue counters are
not decremented.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from crashtrack.config.settings import get_settings
from crashtrack.database.connection import get_session
from crashtrack.database.repositories.crash_event import CrashEventRepository
from crashtrack.database.repositories.symbol_artifact import SymbolArtifactRepository
from crashtrack.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    cutoff: datetime
    events_deleted: int = 0
    artifacts_deleted: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "cutoff": self.cutoff.isoformat(),
            "events_deleted": self.events_deleted,
            "artifacts_deleted": self.artifacts_deleted,
        }


class RetentionService:
    """Deletes events and unused artifacts older than a cutoff."""

    BATCH_SIZE = 1000

    def __init__(self, session_factory: Callable = get_session, batch_size: Optional[int] = None):
        self.session_factory = session_factory
        self.batch_size = batch_size or self.BATCH_SIZE

    async def _delete_in_batches(self, repository_class, cutoff: datetime) -> int:
        total = 0
        while True:
            async with self.session_factory() as session:
                deleted = await repository_class(session).delete_before(cutoff, self.batch_size)
            total += deleted
            if deleted < self.batch_size:
                return total

    async def delete_before(self, cutoff: datetime) -> RetentionResult:
        """
        Delete events older than ``cutoff`` and artifacts uploaded before
        it that have not been used since.

        Args:
            cutoff: Retention boundary

        Returns:
            RetentionResult with deletion counts
        """
        cutoff = ensure_utc(cutoff)
        logger.info(f"Starting crash data cleanup (before {cutoff.isoformat()})")

        result = RetentionResult(cutoff=cutoff)
        result.events_deleted = await self._delete_in_batches(CrashEventRepository, cutoff)
        result.artifacts_deleted = await self._delete_in_batches(SymbolArtifactRepository, cutoff)

        if result.events_deleted or result.artifacts_deleted:
            logger.info(
                f"🧹 Cleanup completed: {result.events_deleted} events, "
                f"{result.artifacts_deleted} artifacts deleted"
            )
        else:
            logger.debug("Cleanup completed: nothing to delete")
        return result

    async def run_cleanup(self, days_to_keep: Optional[int] = None) -> RetentionResult:
        """Delete data older than ``days_to_keep`` days (default from settings)."""
        days = days_to_keep if days_to_keep is not None else get_settings().retention_days
        return await self.delete_before(utc_now() - timedelta(days=days))
