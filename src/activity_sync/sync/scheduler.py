"""Background sync trigger.

Stands in for the OS background-fetch scheduler: once registered, it calls
the sync cycle roughly every ``background.minimum_interval_seconds``.  The
interval is best-effort; a cycle that overruns simply delays the next tick.

Each run goes through the same single-flight entry point as a manual
"Sync now", so a background tick that lands mid-cycle joins it instead of
racing it.  The health adapter re-initializes on every query, so a run after
a cold start needs no extra setup here.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from src.activity_sync.base import SyncResult, utc_now
from src.activity_sync.config_loader import BackgroundConfig

logger = logging.getLogger("fitglue.sync.scheduler")

BACKGROUND_TASK_NAME = "fitglue-background-sync"


class BackgroundFetchResult(str, Enum):
    """What a background run reports back to the scheduler."""

    NEW_DATA = "new_data"
    NO_DATA = "no_data"
    FAILED = "failed"

    @classmethod
    def from_sync_result(cls, result: SyncResult) -> "BackgroundFetchResult":
        if not result.success:
            return cls.FAILED
        return cls.NEW_DATA if result.processed_count > 0 else cls.NO_DATA


class BackgroundSyncTask:
    """Periodic driver for the sync cycle.

    Usage::

        task = BackgroundSyncTask(orchestrator.perform_sync, config.background)
        task.register()
        ...
        await task.unregister()
    """

    def __init__(
        self,
        perform_sync: Callable[[], Awaitable[SyncResult]],
        config: BackgroundConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._perform_sync = perform_sync
        self._config = config
        self._clock = clock
        self._task: asyncio.Task | None = None
        self.last_result: BackgroundFetchResult | None = None
        self.last_run_at: datetime | None = None

    @property
    def interval_seconds(self) -> int:
        return self._config.minimum_interval_seconds

    @property
    def start_on_boot(self) -> bool:
        return self._config.start_on_boot

    @property
    def stop_on_terminate(self) -> bool:
        return self._config.stop_on_terminate

    def register_on_boot(self) -> bool:
        """Register at process start, unless ``start_on_boot`` is off."""
        if not self._config.start_on_boot:
            logger.info("Background sync not started on boot")
            return False
        return self.register()

    def is_registered(self) -> bool:
        return self._task is not None and not self._task.done()

    def register(self) -> bool:
        """Start the periodic loop.  Returns False if already registered."""
        if self.is_registered():
            return False
        self._task = asyncio.create_task(self._loop(), name=BACKGROUND_TASK_NAME)
        logger.info("Background sync registered (interval=%ds)", self.interval_seconds)
        return True

    async def unregister(self) -> bool:
        """Stop the periodic loop.  Returns False if it was not registered."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Background sync unregistered")
        return True

    async def run_once(self) -> BackgroundFetchResult:
        """Run one background sync and classify the outcome."""
        logger.info("Background sync triggered")
        try:
            result = await self._perform_sync()
            outcome = BackgroundFetchResult.from_sync_result(result)
        except Exception as exc:
            logger.error("Background sync failed: %s", exc)
            outcome = BackgroundFetchResult.FAILED
        self.last_result = outcome
        self.last_run_at = self._clock()
        logger.info("Background sync finished: %s", outcome.value)
        return outcome

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
