"""Tests for manual per-workout backfill."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.activity_sync.auth import StaticTokenProvider
from src.activity_sync.base import NOT_AUTHENTICATED, SubmissionResult
from src.activity_sync.sync.backfill import submit_activities
from src.activity_sync.tests.conftest import T0, make_activity, make_workout, network_failure


@pytest.mark.asyncio
async def test_backfill_marks_workouts_synced(ctx, backend, store) -> None:
    backend.submit_batch.return_value = SubmissionResult(success=True, processed_count=2)

    result = await submit_activities(ctx, [make_workout("w-1"), make_workout("w-2")])

    assert result.success is True
    assert result.processed_count == 2
    assert await store.get_synced_ids() == {"w-1", "w-2"}


@pytest.mark.asyncio
async def test_backfill_never_touches_watermark_or_queue(ctx, backend, store) -> None:
    await store.set_watermark(T0)
    await store.append_to_queue([make_activity("queued")])

    await submit_activities(ctx, [make_workout("w-1", start=T0 - timedelta(days=90))])

    assert await store.get_watermark() == T0
    assert [a.external_id for a in await store.get_queue()] == ["queued"]


@pytest.mark.asyncio
async def test_backfill_failure_is_not_queued(ctx, backend, store) -> None:
    backend.submit_batch.return_value = network_failure()

    result = await submit_activities(ctx, [make_workout("w-1")])

    assert result.success is False
    assert result.error == "Network request failed"
    assert await store.get_queue() == []
    assert await store.get_synced_ids() == set()


@pytest.mark.asyncio
async def test_backfill_submits_again_when_already_synced(ctx, backend, store) -> None:
    workout = make_workout("w-1")

    await submit_activities(ctx, [workout])
    await submit_activities(ctx, [workout])

    assert backend.submit_batch.await_count == 2
    assert await store.get_synced_ids() == {"w-1"}


@pytest.mark.asyncio
async def test_backfill_sends_canonical_activities(ctx, backend) -> None:
    await submit_activities(ctx, [make_workout("w-1")])

    activities, source, _ = backend.submit_batch.call_args.args
    assert activities[0].external_id == "w-1"
    assert activities[0].activity_name == "Running"
    assert activities[0].distance == 5000.0
    assert source == ctx.source


@pytest.mark.asyncio
async def test_backfill_requires_auth(ctx, backend) -> None:
    ctx.auth = StaticTokenProvider()

    result = await submit_activities(ctx, [make_workout("w-1")])

    assert result.error == NOT_AUTHENTICATED
    backend.submit_batch.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_backfill_skips_network(ctx, backend) -> None:
    result = await submit_activities(ctx, [])

    assert result.success is True
    backend.submit_batch.assert_not_awaited()
