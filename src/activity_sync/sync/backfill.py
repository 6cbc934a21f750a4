"""Manual backfill: submit caller-chosen device workouts.

This path sits beside the incremental cycle.  It never reads or moves the
watermark and never touches the retry queue, so historical workouts older
than the watermark can still be sent one row at a time.  On success every
submitted workout ID is added to the synced-ID set so the workout list can
show it as synced straight away.

A workout already in the synced-ID set is still submitted; the backend's
skipped count reports the duplicate.
"""

from __future__ import annotations

import logging

from src.activity_sync.base import DeviceWorkout, SyncResult
from src.activity_sync.context import SyncContext

logger = logging.getLogger("fitglue.sync.backfill")


async def submit_activities(ctx: SyncContext, workouts: list[DeviceWorkout]) -> SyncResult:
    """Submit a specific set of device workouts.

    Args:
        ctx:      Sync collaborators.
        workouts: Workouts to send, typically picked from the cached list.

    Returns:
        SyncResult.  Never raises.
    """
    token = await ctx.resolve_token()
    if not token:
        return SyncResult.not_authenticated()

    if not workouts:
        logger.info("Backfill called with no workouts; nothing to submit")
        return SyncResult(success=True)

    try:
        activities = [w.to_activity() for w in workouts]
        logger.info("Backfill: submitting %d workouts", len(activities))
        result = await ctx.backend.submit_batch(activities, ctx.source, token)
    except Exception as exc:
        logger.exception("Backfill submission failed")
        return SyncResult(success=False, error=str(exc) or "Backfill failed")

    if not result.success:
        logger.error("Backfill failed: %s", result.error)
        return SyncResult(
            success=False,
            processed_count=result.processed_count,
            skipped_count=result.skipped_count,
            error=result.error,
        )

    async with ctx.state_lock:
        await ctx.store.add_synced_ids([w.id for w in workouts])
    logger.info(
        "Backfill complete: processed=%d skipped=%d",
        result.processed_count, result.skipped_count,
    )
    return SyncResult(
        success=True,
        processed_count=result.processed_count,
        skipped_count=result.skipped_count,
        error=result.error,
        synced_at=ctx.clock(),
    )
