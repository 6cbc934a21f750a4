"""Sync control endpoints: manual sync, resync, status, enable toggle, background trigger."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.activity_sync.engine import SyncEngine
from src.dependencies import Engine
from src.models.sync import (
    BackgroundStatusRead,
    ManualSyncRead,
    ResyncRequest,
    SyncEnabledUpdate,
    SyncResultRead,
    SyncStatusRead,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("", response_model=ManualSyncRead)
async def trigger_sync(engine: Engine) -> Any:
    return await engine.trigger_manual_sync()


@router.post("/resync", response_model=SyncResultRead)
async def force_resync(engine: Engine, body: ResyncRequest) -> Any:
    return await engine.force_resync(body.from_date)


@router.get("/status", response_model=SyncStatusRead)
async def get_status(engine: Engine) -> Any:
    return await engine.get_sync_status()


@router.put("/enabled", response_model=SyncStatusRead)
async def set_enabled(engine: Engine, body: SyncEnabledUpdate) -> Any:
    await engine.set_sync_enabled(body.enabled)
    return await engine.get_sync_status()


# ---------- Background trigger ----------

def _background_status(engine: SyncEngine) -> BackgroundStatusRead:
    task = engine.background
    return BackgroundStatusRead(
        registered=task.is_registered(),
        interval_seconds=task.interval_seconds,
        start_on_boot=task.start_on_boot,
        stop_on_terminate=task.stop_on_terminate,
        last_result=task.last_result.value if task.last_result else None,
        last_run_at=task.last_run_at,
    )


@router.get("/background", response_model=BackgroundStatusRead)
async def get_background(engine: Engine) -> Any:
    return _background_status(engine)


@router.post("/background", response_model=BackgroundStatusRead)
async def register_background(engine: Engine) -> Any:
    engine.background.register()
    return _background_status(engine)


@router.delete("/background", response_model=BackgroundStatusRead)
async def unregister_background(engine: Engine) -> Any:
    await engine.background.unregister()
    return _background_status(engine)
