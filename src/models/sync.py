"""Pydantic models for the sync control API: results, status, workouts."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.activity_sync.base import ActivitySource, DeviceWorkout
from src.models.base import FitGlueBase


# ---------- Sync results ----------

class SyncResultRead(FitGlueBase):
    success: bool
    processed_count: int = 0
    skipped_count: int = 0
    error: str | None = None
    synced_at: datetime | None = None


class ManualSyncRead(FitGlueBase):
    success: bool
    processed_count: int = 0
    error: str | None = None


class ResyncRequest(FitGlueBase):
    from_date: datetime


class SyncEnabledUpdate(FitGlueBase):
    enabled: bool


class SyncStatusRead(FitGlueBase):
    last_sync_date: datetime | None = None
    sync_enabled: bool
    is_authenticated: bool
    platform: str
    queue_size: int = Field(ge=0)
    background_registered: bool = False


# ---------- Background trigger ----------

class BackgroundStatusRead(FitGlueBase):
    registered: bool
    interval_seconds: int
    start_on_boot: bool
    stop_on_terminate: bool
    last_result: str | None = None
    last_run_at: datetime | None = None


# ---------- Device workouts ----------

class WorkoutBase(FitGlueBase):
    id: str = Field(min_length=1)
    type: str
    start_date: datetime
    end_date: datetime
    duration: float = Field(ge=0)
    distance: float | None = None
    calories: float | None = None
    source: ActivitySource

    def to_device_workout(self) -> DeviceWorkout:
        return DeviceWorkout(
            id=self.id,
            type=self.type,
            start_date=self.start_date,
            end_date=self.end_date,
            duration=self.duration,
            distance=self.distance,
            calories=self.calories,
            source=self.source,
        )


class WorkoutRead(WorkoutBase):
    synced: bool = False


class WorkoutSubmit(FitGlueBase):
    workouts: list[WorkoutBase] = Field(min_length=1)
