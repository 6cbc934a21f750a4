"""Tests for device workout listing and synced-ID reconciliation."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from src.activity_sync.auth import StaticTokenProvider
from src.activity_sync.client import BackendError
from src.activity_sync.sync.reconcile import (
    get_cached_workouts,
    reconcile_synced_ids,
    refresh_device_workouts,
)
from src.activity_sync.tests.conftest import T0, make_workout


class TestReconcileSyncedIds:
    @pytest.mark.asyncio
    async def test_seeds_only_intersection(self, ctx, backend, store) -> None:
        backend.fetch_remote_synced_ids.return_value = ["Y", "Z"]

        seeded = await reconcile_synced_ids(ctx, [make_workout("X"), make_workout("Y")])

        assert seeded == 1
        assert await store.get_synced_ids() == {"Y"}

    @pytest.mark.asyncio
    async def test_skips_when_local_set_populated(self, ctx, backend, store) -> None:
        await store.add_synced_id("X")
        backend.fetch_remote_synced_ids.return_value = ["Y"]

        seeded = await reconcile_synced_ids(ctx, [make_workout("X"), make_workout("Y")])

        assert seeded == 0
        backend.fetch_remote_synced_ids.assert_not_awaited()
        assert await store.get_synced_ids() == {"X"}

    @pytest.mark.asyncio
    async def test_skips_when_no_device_workouts(self, ctx, backend) -> None:
        assert await reconcile_synced_ids(ctx, []) == 0
        backend.fetch_remote_synced_ids.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skips_when_not_authenticated(self, ctx, backend) -> None:
        ctx.auth = StaticTokenProvider()

        assert await reconcile_synced_ids(ctx, [make_workout("X")]) == 0
        backend.fetch_remote_synced_ids.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [BackendError(500, "boom"), httpx.ConnectError("offline"), ValueError("bad json")],
    )
    async def test_failures_are_silent(self, ctx, backend, store, error) -> None:
        backend.fetch_remote_synced_ids.side_effect = error

        assert await reconcile_synced_ids(ctx, [make_workout("X")]) == 0
        assert await store.get_synced_ids() == set()


class TestRefreshDeviceWorkouts:
    @pytest.mark.asyncio
    async def test_lists_caches_and_reconciles(self, ctx, health, backend, store) -> None:
        health.workouts = [
            make_workout("older", start=T0 - timedelta(days=5)),
            make_workout("newer", start=T0 - timedelta(days=1)),
            make_workout("too-old", start=T0 - timedelta(days=45)),
        ]
        backend.fetch_remote_synced_ids.return_value = ["older"]

        workouts = await refresh_device_workouts(ctx)

        assert [w.id for w in workouts] == ["newer", "older"]
        assert [w.id for w in await get_cached_workouts(ctx)] == ["newer", "older"]
        assert await store.get_synced_ids() == {"older"}

    @pytest.mark.asyncio
    async def test_health_failure_keeps_previous_cache(self, ctx, health, store) -> None:
        await store.set_cached_activities([make_workout("cached")])
        health.fail_with = RuntimeError("Health Connect unavailable")

        assert await refresh_device_workouts(ctx) == []
        assert [w.id for w in await get_cached_workouts(ctx)] == ["cached"]
