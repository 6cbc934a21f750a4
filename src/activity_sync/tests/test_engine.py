"""Tests for the SyncEngine facade and production wiring."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.activity_sync.adapters import AppleHealthAdapter, HealthConnectAdapter
from src.activity_sync.auth import FirebaseTokenProvider, StaticTokenProvider
from src.activity_sync.base import HealthState
from src.activity_sync.engine import SyncEngine, build_engine
from src.activity_sync.store import SqliteLocalStore
from src.activity_sync.sync.scheduler import BackgroundFetchResult
from src.activity_sync.tests.conftest import T0, make_activity, make_workout, network_failure
from src.config import Settings


@pytest.fixture
def engine(ctx) -> SyncEngine:
    return SyncEngine(ctx)


class TestSyncEntryPoints:
    @pytest.mark.asyncio
    async def test_manual_sync_result_shape(self, engine, health, store) -> None:
        await store.set_watermark(T0 - timedelta(hours=1))
        health.activities = [make_activity("hk-1", start=T0 - timedelta(minutes=10))]

        assert await engine.trigger_manual_sync() == {
            "success": True,
            "processed_count": 1,
            "error": None,
        }

    @pytest.mark.asyncio
    async def test_manual_sync_reports_failure(self, engine, health, backend, store) -> None:
        await store.set_watermark(T0 - timedelta(hours=1))
        health.activities = [make_activity("hk-1", start=T0 - timedelta(minutes=10))]
        backend.submit_batch.return_value = network_failure()

        result = await engine.trigger_manual_sync()

        assert result["success"] is False
        assert result["error"] == "Network request failed"

    @pytest.mark.asyncio
    async def test_background_run_goes_through_sync(self, engine, health, store) -> None:
        await store.set_watermark(T0 - timedelta(hours=1))
        health.activities = [make_activity("hk-1", start=T0 - timedelta(minutes=10))]

        assert await engine.run_background_sync() is BackgroundFetchResult.NEW_DATA
        assert await engine.run_background_sync() is BackgroundFetchResult.NO_DATA

    @pytest.mark.asyncio
    async def test_disabled_background_run_reports_no_data(self, engine, store) -> None:
        await engine.set_sync_enabled(False)
        assert await engine.run_background_sync() is BackgroundFetchResult.NO_DATA

    @pytest.mark.asyncio
    async def test_status_includes_background_registration(self, engine) -> None:
        engine.background.register()
        try:
            status = await engine.get_sync_status()
        finally:
            await engine.background.unregister()
        assert status.background_registered is True


class TestHealthConnection:
    @pytest.mark.asyncio
    async def test_connect_persists_state(self, engine, store) -> None:
        state = await engine.connect_health_source()

        assert state.connection_status == "connected"
        assert state.permissions.routes is True
        assert await store.get_health_state() == state

    @pytest.mark.asyncio
    async def test_failed_connect_records_error(self, engine, health, store) -> None:
        async def refuse() -> bool:
            return False

        health.initialize = refuse

        state = await engine.connect_health_source()

        assert state.connection_status == "error"
        assert state.is_initialized is False
        assert (await store.get_health_state()).connection_status == "error"


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_wipes_state_and_signs_out(self, engine, ctx, store) -> None:
        await store.set_watermark(T0)
        await store.append_to_queue([make_activity("a")])
        await store.add_synced_id("a")
        await store.set_cached_activities([make_workout("a")])
        engine.background.register()

        await engine.logout()

        assert engine.background.is_registered() is False
        assert ctx.auth.is_authenticated() is False
        assert await store.get_watermark() is None
        assert await store.get_queue() == []
        assert await store.get_synced_ids() == set()
        assert await store.get_cached_activities() == []
        assert await store.get_health_state() == HealthState()


class TestBuildEngine:
    def test_ios_with_static_token(self, tmp_path) -> None:
        settings = Settings(
            _env_file=None,
            platform="ios",
            store_path=tmp_path / "sync.db",
            auth_token="static",
        )

        engine = build_engine(settings)

        assert isinstance(engine.ctx.store, SqliteLocalStore)
        assert isinstance(engine.ctx.health, AppleHealthAdapter)
        assert engine.ctx.health.is_available() is False
        assert isinstance(engine.ctx.auth, StaticTokenProvider)

    def test_android_with_firebase(self, tmp_path) -> None:
        settings = Settings(
            _env_file=None,
            platform="android",
            store_path=tmp_path / "sync.db",
            firebase_api_key="key",
            firebase_refresh_token="refresh",
        )

        engine = build_engine(settings)

        assert isinstance(engine.ctx.health, HealthConnectAdapter)
        assert isinstance(engine.ctx.auth, FirebaseTokenProvider)

    def test_ios_export_path_selects_export_bridge(self, tmp_path) -> None:
        settings = Settings(
            _env_file=None,
            platform="ios",
            store_path=tmp_path / "sync.db",
            healthkit_export_path=tmp_path / "export.xml",
        )

        engine = build_engine(settings)

        assert engine.ctx.health.is_available() is True
