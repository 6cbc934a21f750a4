"""Shared fixtures and fakes for activity sync engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.activity_sync.auth import StaticTokenProvider
from src.activity_sync.base import (
    ActivitySource,
    DeviceWorkout,
    HealthSourceAdapter,
    NormalizedActivity,
    SubmissionResult,
)
from src.activity_sync.config_loader import SyncConfig, load_sync_config
from src.activity_sync.context import SyncContext
from src.activity_sync.store import MemoryLocalStore

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
TEST_TOKEN = "test-token"


def make_activity(
    external_id: str | None = "hk-1",
    start: datetime = T0,
    minutes: int = 30,
    name: str = "Running",
    source: ActivitySource = ActivitySource.HEALTHKIT,
) -> NormalizedActivity:
    return NormalizedActivity(
        external_id=external_id,
        activity_name=name,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        source=source,
    )


def make_workout(workout_id: str, start: datetime = T0) -> DeviceWorkout:
    return DeviceWorkout(
        id=workout_id,
        type="Running",
        start_date=start,
        end_date=start + timedelta(minutes=30),
        duration=1800.0,
        distance=5000.0,
        calories=320.0,
        source=ActivitySource.HEALTHKIT,
    )


class FixedClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeHealthSource(HealthSourceAdapter):
    """In-memory health store: returns seeded activities inside the query window."""

    SOURCE = ActivitySource.HEALTHKIT
    DISPLAY_NAME = "Fake Health"

    def __init__(self) -> None:
        self.activities: list[NormalizedActivity] = []
        self.workouts: list[DeviceWorkout] = []
        self.fail_with: Exception | None = None
        self.queries: list[tuple[datetime, datetime]] = []
        self.init_calls = 0

    def is_available(self) -> bool:
        return True

    async def initialize(self) -> bool:
        self.init_calls += 1
        return True

    async def query_new_activities(
        self, since: datetime, until: datetime
    ) -> list[NormalizedActivity]:
        await self.initialize()
        self.queries.append((since, until))
        if self.fail_with is not None:
            raise self.fail_with
        return [a for a in self.activities if self._in_window(a.start_time, since, until)]

    async def get_workouts(self, start: datetime, end: datetime) -> list[DeviceWorkout]:
        if self.fail_with is not None:
            raise self.fail_with
        return [w for w in self.workouts if start <= w.start_date <= end]


def accepted(processed: int = 1, skipped: int = 0) -> SubmissionResult:
    return SubmissionResult(success=True, processed_count=processed, skipped_count=skipped)


def network_failure(error: str = "Network request failed") -> SubmissionResult:
    return SubmissionResult(success=False, error=error, retryable=True)


def submitted_batches(backend: MagicMock) -> list[list[NormalizedActivity]]:
    """Activity lists passed to every submit_batch call so far."""
    return [c.args[0] for c in backend.submit_batch.call_args_list]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """Load the real bundled config for tests."""
    return load_sync_config()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> MemoryLocalStore:
    return MemoryLocalStore()


@pytest.fixture
def health() -> FakeHealthSource:
    return FakeHealthSource()


@pytest.fixture
def backend() -> MagicMock:
    """Backend client whose calls accept every batch unless re-scripted."""
    client = MagicMock()
    client.submit_batch = AsyncMock(return_value=accepted())
    client.fetch_remote_synced_ids = AsyncMock(return_value=[])
    return client


@pytest.fixture
def auth() -> StaticTokenProvider:
    return StaticTokenProvider(TEST_TOKEN)


@pytest.fixture
def ctx(
    store: MemoryLocalStore,
    health: FakeHealthSource,
    backend: MagicMock,
    auth: StaticTokenProvider,
    sync_config: SyncConfig,
    clock: FixedClock,
) -> SyncContext:
    return SyncContext(
        store=store,
        health=health,
        backend=backend,
        auth=auth,
        config=sync_config,
        clock=clock,
    )
