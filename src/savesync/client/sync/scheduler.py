"""Scheduler for automatic syncs.

This module provides:
- AutoSyncScheduler: Periodic sync every syncFrequencyMinutes, plus a
  connectivity probe that syncs immediately when the remote comes back
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from savesync.client.sync.engine import SyncEngine
    from savesync.client.sync.types import RemoteClient

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync"
CONNECTIVITY_JOB_ID = "connectivity_check"
DEFAULT_CONNECTIVITY_INTERVAL = 30.0  # seconds


class AutoSyncScheduler:
    """Runs a user's syncs on a timer and on reconnect.

    Jobs run on the caller's asyncio event loop; start() must be called from
    a running loop.
    """

    def __init__(
        self,
        engine: SyncEngine,
        remote: RemoteClient,
        user_id: str,
        connectivity_interval: float = DEFAULT_CONNECTIVITY_INTERVAL,
    ) -> None:
        """Initialize the scheduler.

        Args:
            engine: Engine that performs the syncs.
            remote: Remote probed by the connectivity job.
            user_id: Whose data is kept in sync.
            connectivity_interval: Seconds between health checks.
        """
        self._engine = engine
        self._remote = remote
        self._user_id = user_id
        self._connectivity_interval = connectivity_interval
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        """Whether the scheduler has been started."""
        return self._scheduler is not None

    async def _sync_job(self) -> bool | None:
        """Job function for the periodic sync.

        Returns:
            The sync result, or None if the run was skipped.
        """
        status = self._engine.status
        if not self._engine.config.auto_sync:
            logger.debug("Auto sync disabled, skipping scheduled sync")
            return None
        if not status.is_online:
            logger.debug("Offline, skipping scheduled sync")
            return None
        if status.sync_in_progress:
            logger.debug("Sync already in flight, skipping scheduled sync")
            return None
        logger.info(f"Starting scheduled sync for {self._user_id}")
        return await self._engine.sync(self._user_id)

    async def _connectivity_job(self) -> bool | None:
        """Job function for the connectivity probe.

        Returns:
            The reconnect sync's result, or None if no sync ran.
        """
        online = await self._remote.health_check()
        if self._engine.set_online(online):
            logger.info(f"Back online, syncing {self._user_id}")
            return await self._engine.sync(self._user_id)
        return None

    def _add_sync_job(self) -> None:
        assert self._scheduler is not None
        self._scheduler.add_job(
            self._sync_job,
            trigger=IntervalTrigger(seconds=self._engine.config.sync_interval_seconds),
            id=AUTO_SYNC_JOB_ID,
            name="Periodic save-state sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = AsyncIOScheduler()
        self._add_sync_job()
        self._scheduler.add_job(
            self._connectivity_job,
            trigger=IntervalTrigger(seconds=self._connectivity_interval),
            id=CONNECTIVITY_JOB_ID,
            name="Connectivity check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            f"Auto sync scheduler started for {self._user_id} "
            f"(every {self._engine.config.sync_frequency_minutes} min)"
        )

    def reschedule(self) -> None:
        """Apply a changed sync frequency to the periodic job."""
        if self._scheduler is None:
            return
        self._add_sync_job()
        logger.info(
            f"Auto sync rescheduled (every {self._engine.config.sync_frequency_minutes} min)"
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Auto sync scheduler stopped")

    def job_ids(self) -> list[str]:
        """Ids of the scheduled jobs (empty when stopped)."""
        if self._scheduler is None:
            return []
        return sorted(job.id for job in self._scheduler.get_jobs())

    async def run_now(self) -> bool:
        """Run a sync immediately (manual trigger, forced)."""
        return await self._engine.force_sync(self._user_id)

    async def check_connectivity_now(self) -> bool | None:
        """Run the connectivity probe immediately."""
        return await self._connectivity_job()
