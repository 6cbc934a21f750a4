"""Tests for activity identity and order-preserving de-duplication."""

from __future__ import annotations

from datetime import timedelta

from src.activity_sync.base import ActivitySource
from src.activity_sync.sync.dedup import intersect_ids, merge_unique
from src.activity_sync.tests.conftest import T0, make_activity


class TestIdentity:
    def test_external_id_wins_over_times(self) -> None:
        a = make_activity("hk-1", start=T0)
        b = make_activity("hk-1", start=T0 + timedelta(minutes=1), name="Walking")
        assert a.identity == b.identity

    def test_identity_is_scoped_by_source(self) -> None:
        a = make_activity("1", source=ActivitySource.HEALTHKIT)
        b = make_activity("1", source=ActivitySource.HEALTH_CONNECT)
        assert a.identity != b.identity

    def test_fallback_identity_uses_window_and_name(self) -> None:
        a = make_activity(None, name="Yoga")
        assert a.identity == make_activity(None, name="Yoga").identity
        assert a.identity != make_activity(None, name="Pilates").identity
        assert a.identity != make_activity(None, name="Yoga", minutes=45).identity


class TestMergeUnique:
    def test_earlier_batches_win_and_keep_order(self) -> None:
        queue = [make_activity("q1"), make_activity("shared")]
        fresh = [make_activity("shared", name="Walking"), make_activity("f1")]

        merged = merge_unique(queue, fresh)

        assert [a.external_id for a in merged] == ["q1", "shared", "f1"]
        assert merged[1].activity_name == "Running"

    def test_empty_batches(self) -> None:
        assert merge_unique([], []) == []


class TestIntersectIds:
    def test_only_common_ids(self) -> None:
        assert intersect_ids(["Y", "Z"], ["X", "Y"]) == ["Y"]

    def test_duplicates_collapse_in_remote_order(self) -> None:
        assert intersect_ids(["b", "a", "b"], ["a", "b"]) == ["b", "a"]

    def test_no_overlap(self) -> None:
        assert intersect_ids(["Z"], ["X"]) == []
