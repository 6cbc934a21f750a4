"""Device workout listing and synced-ID reconciliation.

After a reinstall or storage wipe the local synced-ID set is empty even
though the backend already holds most of the device's workouts.  When that
is detected on a fresh device listing, the backend's synced IDs are fetched
and intersected with the listed workout IDs, and only that intersection is
written back.  The set only drives the "synced" badge, so every failure in
this module is logged and ignored.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from src.activity_sync.base import DeviceWorkout
from src.activity_sync.context import SyncContext
from src.activity_sync.sync.dedup import intersect_ids

logger = logging.getLogger("fitglue.sync.reconcile")


async def reconcile_synced_ids(ctx: SyncContext, workouts: list[DeviceWorkout]) -> int:
    """Seed the synced-ID set from the backend when it is empty locally.

    Returns:
        Number of IDs seeded (0 when nothing was done or on any failure).
    """
    if not workouts:
        return 0
    try:
        if await ctx.store.get_synced_ids():
            return 0

        token = await ctx.resolve_token()
        if not token:
            return 0

        remote_ids = await ctx.backend.fetch_remote_synced_ids(token)
        seeded = intersect_ids(remote_ids, [w.id for w in workouts])
        if not seeded:
            return 0

        async with ctx.state_lock:
            # Another path may have populated the set while we were fetching
            if await ctx.store.get_synced_ids():
                return 0
            await ctx.store.add_synced_ids(seeded)
        logger.info("Reconciliation seeded %d synced IDs from backend", len(seeded))
        return len(seeded)
    except Exception as exc:
        logger.debug("Synced-ID reconciliation skipped: %s", exc)
        return 0


async def refresh_device_workouts(ctx: SyncContext) -> list[DeviceWorkout]:
    """List recent device workouts, cache them, then reconcile synced IDs.

    The lookback window is ``sync.device_lookback_days`` ending now.  A
    health source failure yields an empty list and leaves the cache as is.
    """
    end = ctx.clock()
    start = end - timedelta(days=ctx.config.sync.device_lookback_days)
    try:
        workouts = await ctx.health.get_workouts(start, end)
    except Exception as exc:
        logger.error("Failed to list device workouts: %s", exc)
        return []

    workouts.sort(key=lambda w: w.start_date, reverse=True)
    await ctx.store.set_cached_activities(workouts)
    logger.info("Cached %d device workouts", len(workouts))

    await reconcile_synced_ids(ctx, workouts)
    return workouts


async def get_cached_workouts(ctx: SyncContext) -> list[DeviceWorkout]:
    return await ctx.store.get_cached_activities()
