"""Scheduler for stale lock cleanup.

This module provides:
- Periodic purge of SyncedItemLocks older than the lock timeout
- Manual purge for CLI usage
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from circlesync.core.config import DEFAULT_LOCK_CLEANUP_INTERVAL, DEFAULT_LOCK_TIMEOUT

if TYPE_CHECKING:
    from circlesync.core.config import SyncConfig
    from circlesync.server.database import SyncStore

logger = logging.getLogger(__name__)


class LockCleanupScheduler:
    """Runs the stale lock purge every `interval` seconds.

    Acquiring a lock already purges stale locks; this job keeps the table
    clean on instances that stay idle.
    """

    def __init__(
        self,
        store: SyncStore,
        lock_timeout: int = DEFAULT_LOCK_TIMEOUT,
        interval: int = DEFAULT_LOCK_CLEANUP_INTERVAL,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Sync store holding the locks.
            lock_timeout: Age in seconds after which a lock is stale.
            interval: Seconds between two purges.
        """
        self._store = store
        self._lock_timeout = lock_timeout
        self._interval = interval
        self._scheduler: BackgroundScheduler | None = None

    @classmethod
    def from_config(cls, store: SyncStore, config: SyncConfig) -> LockCleanupScheduler:
        """Build a scheduler using the timeouts of an instance configuration."""
        return cls(store, config.lock_timeout, config.lock_cleanup_interval)

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def _cleanup_job(self) -> None:
        """Job function for the scheduled lock purge."""
        try:
            deleted = self._store.clean_stale_locks(self._lock_timeout)
            if deleted == 0:
                logger.debug("Lock cleanup: no lock older than %d seconds", self._lock_timeout)
        except Exception:
            logger.exception("Error during scheduled lock cleanup")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._cleanup_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id="stale_lock_cleanup",
            name="Stale lock cleanup",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Lock cleanup scheduler started (every %d seconds, timeout: %d seconds)",
            self._interval,
            self._lock_timeout,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Lock cleanup scheduler stopped")

    def run_now(self) -> int:
        """Run the lock purge immediately (manual trigger).

        Returns:
            Number of stale locks deleted.
        """
        return self._store.clean_stale_locks(self._lock_timeout)
