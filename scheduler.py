"""Refresh-Token Sweeper for Turnstile

Periodically deletes expired refresh tokens using APScheduler. Lookups
already ignore expired rows, so the sweep only keeps the table small; a
missed or late run never affects correctness.

Features:
    - Interval-based scheduling on the running event loop
    - Overlapping runs coalesced (one sweep at a time)
    - Execution, error and missed-run logging

Example:
    >>> from scheduler import RefreshTokenSweeper
    >>>
    >>> sweeper = RefreshTokenSweeper(store, interval_seconds=3600)
    >>> sweeper.start()
    >>> ...
    >>> sweeper.shutdown()
"""

import logging
from typing import Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.refresh_token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "refresh-token-sweep"


class SchedulerError(Exception):
    """Exception raised when the sweeper cannot be started.

    Example:
        >>> raise SchedulerError("Failed to start sweeper")
    """
    pass


class RefreshTokenSweeper:
    """Runs ``RefreshTokenStore.sweep`` on a fixed interval.

    Attributes:
        scheduler: APScheduler AsyncIOScheduler instance
        store: Refresh-token store to sweep
        interval_seconds: Seconds between sweeps
        last_removed: Rows removed by the most recent sweep
    """

    def __init__(self, store: RefreshTokenStore, interval_seconds: int = 3600):
        self.scheduler = AsyncIOScheduler()
        self.store = store
        self.interval_seconds = interval_seconds
        self.last_removed: Optional[int] = None

        self.scheduler.add_listener(self._job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_missed_listener, EVENT_JOB_MISSED)

    async def sweep_once(self) -> int:
        """Delete expired tokens now.

        Returns:
            Number of removed tokens
        """
        removed = await self.store.sweep()
        self.last_removed = removed
        if removed:
            logger.info(f"Swept {removed} expired refresh token(s)")
        return removed

    def start(self) -> None:
        """Schedule the sweep and start the scheduler on the running loop.

        Raises:
            SchedulerError: If the scheduler fails to start
        """
        self.scheduler.add_job(
            self.sweep_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Expired refresh-token sweep",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=60,
        )

        try:
            self.scheduler.start()
        except RuntimeError as e:
            logger.error(f"Failed to start sweeper: {e}", exc_info=True)
            raise SchedulerError(f"Sweeper startup failed: {e}") from e

        logger.info(f"Refresh-token sweeper started (every {self.interval_seconds}s)")

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Refresh-token sweeper stopped")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def _job_executed_listener(self, event: JobExecutionEvent) -> None:
        logger.debug(f"Sweep executed: {event.job_id}", extra={"job_id": event.job_id})

    def _job_error_listener(self, event: JobExecutionEvent) -> None:
        """Log a failed sweep; the next interval tries again."""
        logger.error(
            f"Sweep failed: {event.job_id} - {event.exception}",
            extra={"job_id": event.job_id},
            exc_info=event.exception
        )

    def _job_missed_listener(self, event: JobExecutionEvent) -> None:
        logger.warning(f"Sweep missed: {event.job_id}", extra={"job_id": event.job_id})
