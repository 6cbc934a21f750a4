"""Tests for the control API routes."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from src.activity_sync.engine import SyncEngine
from src.activity_sync.tests.conftest import T0, make_activity, make_workout
from src.main import create_app


@pytest.fixture
def engine(ctx) -> SyncEngine:
    return SyncEngine(ctx)


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def test_health_check(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["store"] == "ready"


def test_engine_missing_returns_503() -> None:
    app = create_app()
    # Routes only; lifespan is not entered, so no engine is wired
    response = TestClient(app).get("/api/v1/sync/status")
    assert response.status_code == 503


class TestSyncRoutes:
    def test_manual_sync(self, client, store, health) -> None:
        asyncio.run(store.set_watermark(T0 - timedelta(hours=1)))
        health.activities = [make_activity("hk-1", start=T0 - timedelta(minutes=10))]

        response = client.post("/api/v1/sync")

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed_count": 1, "error": None}

    def test_status(self, client, store) -> None:
        asyncio.run(store.set_watermark(T0))

        body = client.get("/api/v1/sync/status").json()

        assert body["last_sync_date"].startswith("2026-03-02T08:00:00")
        assert body["sync_enabled"] is True
        assert body["platform"] == "ios"
        assert body["queue_size"] == 0

    def test_toggle_enabled(self, client, store) -> None:
        response = client.put("/api/v1/sync/enabled", json={"enabled": False})

        assert response.status_code == 200
        assert response.json()["sync_enabled"] is False
        assert asyncio.run(store.is_sync_enabled()) is False

    def test_resync(self, client, store, health, backend) -> None:
        asyncio.run(store.set_watermark(T0))
        health.activities = [make_activity("old", start=T0 - timedelta(days=3))]

        response = client.post(
            "/api/v1/sync/resync", json={"from_date": (T0 - timedelta(days=7)).isoformat()}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert backend.submit_batch.await_count == 1

    def test_resync_requires_date(self, client) -> None:
        assert client.post("/api/v1/sync/resync", json={}).status_code == 422

    def test_background_register_cycle(self, client) -> None:
        assert client.get("/api/v1/sync/background").json()["registered"] is False

        registered = client.post("/api/v1/sync/background").json()
        assert registered["registered"] is True
        assert registered["interval_seconds"] == 900
        assert registered["start_on_boot"] is True
        assert registered["stop_on_terminate"] is False

        assert client.delete("/api/v1/sync/background").json()["registered"] is False


class TestWorkoutRoutes:
    def test_refresh_then_list(self, client, health, backend) -> None:
        health.workouts = [make_workout("w-1", start=T0 - timedelta(days=1))]
        backend.fetch_remote_synced_ids.return_value = ["w-1"]

        refreshed = client.post("/api/v1/workouts/refresh").json()
        listed = client.get("/api/v1/workouts").json()

        assert [w["id"] for w in refreshed] == ["w-1"]
        assert listed == refreshed
        assert listed[0]["synced"] is True
        assert listed[0]["source"] == "healthkit"

    def test_backfill(self, client, store, backend) -> None:
        workout = make_workout("w-9", start=T0 - timedelta(days=200))
        payload = {
            "workouts": [{
                "id": workout.id,
                "type": workout.type,
                "start_date": workout.start_date.isoformat(),
                "end_date": workout.end_date.isoformat(),
                "duration": workout.duration,
                "distance": workout.distance,
                "calories": workout.calories,
                "source": "healthkit",
            }]
        }

        response = client.post("/api/v1/workouts/sync", json=payload)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert asyncio.run(store.get_synced_ids()) == {"w-9"}
        assert asyncio.run(store.get_watermark()) is None

    def test_backfill_rejects_empty_list(self, client) -> None:
        assert client.post("/api/v1/workouts/sync", json={"workouts": []}).status_code == 422
