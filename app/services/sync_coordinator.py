# app/services/sync_coordinator.py
"""
Process-wide owner of sync runs.

Only one inventory sync, order sync or single-variant sync runs at a time; a second trigger while
one is active fails immediately with SyncInProgressError instead of queueing.
Completed inventory runs are kept in memory, most recent first, capped at
SYNC_HISTORY_LIMIT entries. Recurring runs are driven by an APScheduler
AsyncIOScheduler interval job on the application's event loop.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Iterable, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.enums import ChannelName, CoordinatorState
from app.core.exceptions import SyncInProgressError, ValidationError
from app.schemas.sync import OrderIngestionResult, SyncRun, SyncStatusSnapshot, VariantSyncResult
from app.services.order_ingestion import OrderIngestionService
from app.services.reconciliation_engine import ReconciliationEngine

logger = logging.getLogger(__name__)

RECURRING_JOB_ID = "recurring_inventory_sync"
MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL_MINUTES = 1440


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


class SyncCoordinator:

    def __init__(
        self,
        engine: ReconciliationEngine,
        ingestor: OrderIngestionService,
        history_limit: int = 100,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.engine = engine
        self.ingestor = ingestor
        self.history_limit = history_limit
        self._history: Deque[SyncRun] = deque(maxlen=history_limit)
        self._state = CoordinatorState.IDLE
        self._scheduler = scheduler
        self._interval_minutes: Optional[int] = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def _acquire(self, what: str) -> None:
        # Check-and-set with no await in between, so two triggers on the loop can't both pass
        if self._state is CoordinatorState.RUNNING:
            raise SyncInProgressError(f"Sync already in progress, cannot start {what}")
        self._state = CoordinatorState.RUNNING

    def _release(self) -> None:
        self._state = CoordinatorState.IDLE

    async def trigger_sync(
        self,
        channels: Optional[Iterable[ChannelName]] = None,
        auto_correct: bool = False,
    ) -> SyncRun:
        """
        Run one reconciliation pass, stamp its start and end time and record it
        in history.

        Raises:
            SyncInProgressError: another run is active
            CatalogReadError: the catalog could not be read; nothing is recorded
        """
        self._acquire("inventory sync")
        try:
            start_time = datetime.now(timezone.utc)
            run = await self.engine.run_sync(channels, auto_correct=auto_correct)
            run.start_time = start_time
            run.end_time = datetime.now(timezone.utc)
            self._history.appendleft(run)
            return run
        finally:
            self._release()

    async def trigger_order_sync(
        self,
        channels: Optional[Iterable[ChannelName]] = None,
        since: Optional[datetime] = None,
    ) -> OrderIngestionResult:
        self._acquire("order sync")
        try:
            return await self.ingestor.ingest_orders(channels, since=since)
        finally:
            self._release()

    async def trigger_variant_sync(
        self,
        variant_id: int,
        channels: Iterable[ChannelName],
        target_quantity: Optional[int] = None,
    ) -> List[VariantSyncResult]:
        """Push one variant to the given channels; not recorded in history"""
        self._acquire(f"sync of variant {variant_id}")
        try:
            return await self.engine.sync_variant(variant_id, channels, target_quantity)
        finally:
            self._release()

    def get_status(self) -> SyncStatusSnapshot:
        next_run_time = None
        job = self._get_job()
        if job is not None:
            next_run_time = job.next_run_time

        return SyncStatusSnapshot(
            state=self._state,
            is_running=self._state is CoordinatorState.RUNNING,
            last_run=self._history[0] if self._history else None,
            total_runs=len(self._history),
            auto_sync_interval_minutes=self._interval_minutes,
            next_run_time=next_run_time,
        )

    def get_history(self, limit: int = 10) -> List[SyncRun]:
        """Most recent runs first"""
        return list(self._history)[:max(0, limit)]

    # --- Recurring runs ---

    def _get_job(self):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(RECURRING_JOB_ID)

    async def _scheduled_sync(self) -> None:
        if self.get_status().is_running:
            logger.info("Skipping scheduled sync, a sync is already running")
            return

        logger.info("=== SCHEDULED SYNC STARTING ===")
        try:
            run = await self.trigger_sync(auto_correct=True)
            logger.info(f"Scheduled sync {run.sync_id} completed: {len(run.discrepancies)} discrepancies")
        except SyncInProgressError:
            logger.info("Skipping scheduled sync, a sync is already running")
        except Exception as e:
            logger.exception(f"Error in scheduled sync task: {str(e)}")

    def schedule_recurring(self, interval_minutes: int) -> SyncStatusSnapshot:
        """Run an auto-correcting sync every `interval_minutes`, replacing any existing schedule"""
        if not MIN_INTERVAL_MINUTES <= interval_minutes <= MAX_INTERVAL_MINUTES:
            raise ValidationError(
                f"Interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes"
            )

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        self._scheduler.add_job(
            self._scheduled_sync,
            IntervalTrigger(minutes=interval_minutes),
            id=RECURRING_JOB_ID,
            name="Recurring Inventory Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()

        self._interval_minutes = interval_minutes
        logger.info(f"Auto sync scheduled every {interval_minutes} minutes")
        return self.get_status()

    def stop_recurring(self) -> bool:
        """Remove the recurring job; returns False when none was scheduled"""
        self._interval_minutes = None
        if self._get_job() is None:
            return False
        self._scheduler.remove_job(RECURRING_JOB_ID)
        logger.info("Auto sync stopped")
        return True

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown")
