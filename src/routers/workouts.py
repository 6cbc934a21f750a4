"""Device workout endpoints: cached list, refresh from the health source, manual backfill."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.activity_sync.base import DeviceWorkout
from src.dependencies import Engine
from src.models.sync import SyncResultRead, WorkoutRead, WorkoutSubmit

router = APIRouter(prefix="/workouts", tags=["workouts"])


def _with_synced_flag(workouts: list[DeviceWorkout], synced_ids: set[str]) -> list[WorkoutRead]:
    return [
        WorkoutRead(
            id=w.id,
            type=w.type,
            start_date=w.start_date,
            end_date=w.end_date,
            duration=w.duration,
            distance=w.distance,
            calories=w.calories,
            source=w.source,
            synced=w.id in synced_ids,
        )
        for w in workouts
    ]


@router.get("", response_model=list[WorkoutRead])
async def list_cached_workouts(engine: Engine) -> Any:
    workouts = await engine.get_cached_workouts()
    return _with_synced_flag(workouts, await engine.get_synced_ids())


@router.post("/refresh", response_model=list[WorkoutRead])
async def refresh_workouts(engine: Engine) -> Any:
    workouts = await engine.refresh_device_workouts()
    return _with_synced_flag(workouts, await engine.get_synced_ids())


@router.post("/sync", response_model=SyncResultRead)
async def sync_workouts(engine: Engine, body: WorkoutSubmit) -> Any:
    return await engine.submit_activities([w.to_device_workout() for w in body.workouts])
