"""Tests for the background sync trigger."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.activity_sync.base import SyncResult
from src.activity_sync.config_loader import BackgroundConfig
from src.activity_sync.sync.scheduler import BackgroundFetchResult, BackgroundSyncTask
from src.activity_sync.tests.conftest import FixedClock


def _task(perform_sync: AsyncMock, interval: int = 900) -> BackgroundSyncTask:
    return BackgroundSyncTask(
        perform_sync, BackgroundConfig(minimum_interval_seconds=interval), clock=FixedClock()
    )


class TestRunOnce:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("result", "expected"),
        [
            (SyncResult(success=True, processed_count=4), BackgroundFetchResult.NEW_DATA),
            (SyncResult(success=True), BackgroundFetchResult.NO_DATA),
            (SyncResult(success=False, error="Server error: 502"), BackgroundFetchResult.FAILED),
        ],
    )
    async def test_classifies_sync_result(self, result, expected) -> None:
        task = _task(AsyncMock(return_value=result))

        assert await task.run_once() is expected
        assert task.last_result is expected
        assert task.last_run_at is not None

    @pytest.mark.asyncio
    async def test_exception_reports_failed(self) -> None:
        task = _task(AsyncMock(side_effect=RuntimeError("cold start crash")))
        assert await task.run_once() is BackgroundFetchResult.FAILED


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_and_unregister(self) -> None:
        task = _task(AsyncMock(return_value=SyncResult(success=True)))

        assert task.is_registered() is False
        assert task.register() is True
        assert task.register() is False
        assert task.is_registered() is True

        assert await task.unregister() is True
        assert task.is_registered() is False
        assert await task.unregister() is False

    @pytest.mark.asyncio
    async def test_register_on_boot_follows_config(self) -> None:
        perform_sync = AsyncMock(return_value=SyncResult(success=True))
        off = BackgroundSyncTask(perform_sync, BackgroundConfig(start_on_boot=False))
        on = BackgroundSyncTask(perform_sync, BackgroundConfig(start_on_boot=True))

        assert off.register_on_boot() is False
        assert off.is_registered() is False
        assert on.register_on_boot() is True
        assert on.is_registered() is True

        await on.unregister()

    @pytest.mark.asyncio
    async def test_loop_runs_sync_each_interval(self, monkeypatch: pytest.MonkeyPatch) -> None:
        perform_sync = AsyncMock(return_value=SyncResult(success=True, processed_count=1))
        task = _task(perform_sync, interval=1)
        real_sleep = asyncio.sleep

        async def fast_sleep(delay: float) -> None:
            await real_sleep(0)

        monkeypatch.setattr("src.activity_sync.sync.scheduler.asyncio.sleep", fast_sleep)
        task.register()
        while perform_sync.await_count < 3:
            await real_sleep(0)
        await task.unregister()

        assert perform_sync.await_count >= 3
        assert task.last_result is BackgroundFetchResult.NEW_DATA
