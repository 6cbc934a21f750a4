"""Public facade over the sync engine.

``SyncEngine`` is what the control API and the app entry point hold.  It
wires one SyncContext into the orchestrator, the backfill and
reconciliation paths, and the background trigger, and exposes them as a
flat set of coroutine methods.
"""

from __future__ import annotations

import logging
from datetime import datetime

from src.activity_sync.base import (
    ActivitySource,
    DeviceWorkout,
    HealthPermissions,
    HealthState,
    SyncResult,
)
from src.activity_sync.context import SyncContext, build_sync_context
from src.activity_sync.sync import backfill, reconcile
from src.activity_sync.sync.orchestrator import SyncOrchestrator, SyncStatus
from src.activity_sync.sync.scheduler import BackgroundFetchResult, BackgroundSyncTask
from src.config import Settings

logger = logging.getLogger("fitglue.engine")


class SyncEngine:
    """Entry points for syncing, backfill, workout listing and logout."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx
        self.orchestrator = SyncOrchestrator(ctx)
        self.background = BackgroundSyncTask(
            self.orchestrator.perform_sync, ctx.config.background, clock=ctx.clock
        )

    # -- syncing ----------------------------------------------------------

    async def perform_sync(self) -> SyncResult:
        return await self.orchestrator.perform_sync()

    async def trigger_manual_sync(self) -> dict:
        """Run a sync for the "Sync now" button.

        Returns:
            ``{"success", "processed_count", "error"}``
        """
        result = await self.orchestrator.perform_sync()
        return {
            "success": result.success,
            "processed_count": result.processed_count,
            "error": result.error,
        }

    async def force_resync(self, from_date: datetime) -> SyncResult:
        return await self.orchestrator.force_resync(from_date)

    async def submit_activities(self, workouts: list[DeviceWorkout]) -> SyncResult:
        return await backfill.submit_activities(self.ctx, workouts)

    async def run_background_sync(self) -> BackgroundFetchResult:
        return await self.background.run_once()

    # -- device workouts --------------------------------------------------

    async def refresh_device_workouts(self) -> list[DeviceWorkout]:
        return await reconcile.refresh_device_workouts(self.ctx)

    async def get_cached_workouts(self) -> list[DeviceWorkout]:
        return await reconcile.get_cached_workouts(self.ctx)

    async def get_synced_ids(self) -> set[str]:
        return await self.ctx.store.get_synced_ids()

    # -- state ------------------------------------------------------------

    async def get_sync_status(self) -> SyncStatus:
        return await self.orchestrator.get_sync_status(
            background_registered=self.background.is_registered()
        )

    async def set_sync_enabled(self, enabled: bool) -> None:
        await self.ctx.store.set_sync_enabled(enabled)
        logger.info("Sync %s", "enabled" if enabled else "disabled")

    async def connect_health_source(self) -> HealthState:
        """Initialize the health source and persist the connection state."""
        store = self.ctx.store
        state = await store.get_health_state()
        state.connection_status = "connecting"
        await store.set_health_state(state)

        connected = await self.ctx.health.initialize()
        state = HealthState(
            is_initialized=connected,
            permissions=HealthPermissions(
                workouts=connected,
                heart_rate=connected,
                routes=connected and self.ctx.source is ActivitySource.HEALTHKIT,
            ),
            connection_status="connected" if connected else "error",
        )
        await store.set_health_state(state)
        logger.info(
            "%s connection: %s", self.ctx.health.DISPLAY_NAME, state.connection_status
        )
        return state

    async def logout(self) -> None:
        """Stop background sync, sign out and wipe all local sync state."""
        await self.background.unregister()
        sign_out = getattr(self.ctx.auth, "sign_out", None)
        if callable(sign_out):
            sign_out()
        async with self.ctx.state_lock:
            await self.ctx.store.clear_all()
        logger.info("Logged out")


def build_engine(settings: Settings, health_bridge: object | None = None) -> SyncEngine:
    return SyncEngine(build_sync_context(settings, health_bridge))
