"""Incremental sync cycle.

One cycle:
1. Short-circuit if sync is disabled (success, nothing processed)
2. Resolve an auth token; fail fast without touching any state if absent
3. Read the watermark; a first run initializes it to "now" (no history pull)
4. Query the health source for [watermark, now)
5. Merge the retry queue (head, original order) with the fresh activities
6. Nothing to send: advance the watermark and stop
7. Submit the merged batch
8. Success: advance the watermark and clear the queue in one commit
9. Failure: queue the whole batch, keep the watermark where it was

Cycles are single-flight: a second caller arriving while a cycle runs joins
it and receives the same SyncResult.  The cycle runs as its own task, so a
caller that stops waiting does not stop the commit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from src.activity_sync.base import SyncResult
from src.activity_sync.context import SyncContext
from src.activity_sync.sync.dedup import merge_unique

logger = logging.getLogger("fitglue.sync.orchestrator")


@dataclass
class SyncStatus:
    """Snapshot of sync state for status displays."""

    last_sync_date: datetime | None
    sync_enabled: bool
    is_authenticated: bool
    platform: str
    queue_size: int
    background_registered: bool = False


class SyncOrchestrator:
    """Owns the watermark and retry queue lifecycle.

    Usage::

        orchestrator = SyncOrchestrator(ctx)
        result = await orchestrator.perform_sync()
    """

    def __init__(self, ctx: SyncContext) -> None:
        self._ctx = ctx
        self._in_flight: asyncio.Task[SyncResult] | None = None

    @property
    def is_syncing(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def perform_sync(self) -> SyncResult:
        """Run one incremental sync cycle, or join the one already running.

        Never raises: every failure is reported in the returned SyncResult.
        """
        return await self._single_flight(window_start=None)

    async def force_resync(self, from_date: datetime) -> SyncResult:
        """Run a cycle whose window starts at ``from_date``.

        The stored watermark is not moved backwards: the commit still keeps
        the later of the stored watermark and this cycle's window end.  A
        ``from_date`` later than the watermark is pulled back to it so the
        gap in between is still read.
        Waits for any in-flight cycle to finish first instead of joining it.
        """
        logger.info("Forcing resync from %s", from_date.isoformat())
        return await self._single_flight(window_start=from_date)

    async def get_sync_status(self, background_registered: bool = False) -> SyncStatus:
        store = self._ctx.store
        return SyncStatus(
            last_sync_date=await store.get_watermark(),
            sync_enabled=await store.is_sync_enabled(),
            is_authenticated=self._ctx.auth.is_authenticated(),
            platform=self._ctx.source.device_platform,
            queue_size=len(await store.get_queue()),
            background_registered=background_registered,
        )

    # ------------------------------------------------------------------
    # Single-flight
    # ------------------------------------------------------------------

    async def _single_flight(self, window_start: datetime | None) -> SyncResult:
        while True:
            task = self._in_flight
            if task is None or task.done():
                task = asyncio.create_task(self._run_cycle(window_start))
                self._in_flight = task
                return await asyncio.shield(task)
            if window_start is None:
                logger.info("Sync already in progress; waiting for its result")
                return await asyncio.shield(task)
            await asyncio.wait([task])

    async def _run_cycle(self, window_start: datetime | None) -> SyncResult:
        try:
            async with self._ctx.state_lock:
                return await self._cycle(window_start)
        except Exception as exc:
            logger.exception("Sync cycle failed unexpectedly")
            return SyncResult(success=False, error=str(exc) or "Sync failed unexpectedly")

    # ------------------------------------------------------------------
    # The cycle
    # ------------------------------------------------------------------

    async def _cycle(self, window_start: datetime | None) -> SyncResult:
        ctx = self._ctx
        store = ctx.store
        logger.info("Starting sync...")

        if not await store.is_sync_enabled():
            logger.info("Sync is disabled")
            return SyncResult(success=True)

        token = await ctx.resolve_token()
        if not token:
            return SyncResult.not_authenticated()

        now = ctx.clock()
        watermark = await store.get_watermark()
        if watermark is None:
            watermark = now
            await store.set_watermark(watermark)
            logger.info("No previous sync, starting from %s", watermark.isoformat())
        else:
            logger.info("Last sync date: %s", watermark.isoformat())

        if window_start is not None and window_start > watermark:
            logger.warning(
                "Resync start %s is after the watermark; starting from %s instead",
                window_start.isoformat(), watermark.isoformat(),
            )
            window_start = watermark
        since = window_start or watermark
        next_watermark = max(watermark, now)

        source_error: str | None = None
        try:
            fresh = await ctx.health.query_new_activities(since, now)
        except Exception as exc:
            fresh = []
            if ctx.config.sync.freeze_watermark_on_source_failure:
                logger.error("Health source query failed, watermark frozen: %s", exc)
                source_error = f"Health source query failed: {exc}"
            else:
                logger.error("Health source query failed, treating as no new activities: %s", exc)

        queued = await store.get_queue()
        if queued:
            logger.info("Adding %d queued activities from previous failures", len(queued))
        batch = merge_unique(queued, fresh)

        if not batch:
            if source_error:
                return SyncResult(success=False, error=source_error)
            logger.info("No new activities to sync")
            await store.set_watermark(next_watermark)
            return SyncResult(success=True, synced_at=now)

        logger.info(
            "Submitting %d total activities (%d new, %d queued)",
            len(batch), len(batch) - len(queued), len(queued),
        )
        result = await ctx.backend.submit_batch(batch, ctx.source, token)

        if result.success and source_error:
            # Queue delivered; the window itself was never read.
            await store.clear_queue()
            logger.info("Retried %d queued activities; watermark left frozen", len(batch))
            return SyncResult(
                success=False,
                processed_count=result.processed_count,
                skipped_count=result.skipped_count,
                error=source_error,
            )

        if result.success:
            if not await store.commit_success(next_watermark):
                logger.warning("Sync submitted but local commit failed; batch will be re-sent")
            logger.info(
                "Sync completed successfully: processed=%d skipped=%d",
                result.processed_count, result.skipped_count,
            )
            return SyncResult(
                success=True,
                processed_count=result.processed_count,
                skipped_count=result.skipped_count,
                error=result.error,
                synced_at=now,
            )

        if result.retryable:
            logger.info("Queuing %d activities for retry", len(batch))
            await store.append_to_queue(batch)
        logger.error("Sync failed: %s", result.error)
        return SyncResult(
            success=False,
            processed_count=result.processed_count,
            skipped_count=result.skipped_count,
            error=result.error,
        )
