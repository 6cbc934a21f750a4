"""De-duplication of activities across the retry queue and fresh fetches.

When a submission fails, the watermark stays frozen and the failed batch is
queued, so the next cycle sees the same activities twice: once from the
queue and once from re-querying the same window.  Merging by identity keeps
every activity in exactly one slot of the next submission body.

Identity (see ``NormalizedActivity.identity``):
    - ``source:id:externalId`` when the platform provides a stable ID
    - ``source:startTime:endTime:activityName`` otherwise
"""

from __future__ import annotations

import logging
from typing import Iterable

from src.activity_sync.base import NormalizedActivity

logger = logging.getLogger("fitglue.sync.dedup")


def merge_unique(*batches: Iterable[NormalizedActivity]) -> list[NormalizedActivity]:
    """Concatenate batches, keeping only the first occurrence of each identity.

    Earlier batches win, so passing ``(queue, fresh)`` keeps queued entries
    at the head in their original order, ahead of newly discovered ones.

    Args:
        *batches: Activity sequences in priority order.

    Returns:
        A new list with duplicates removed.
    """
    seen: set[str] = set()
    merged: list[NormalizedActivity] = []
    dropped = 0
    for batch in batches:
        for activity in batch:
            key = activity.identity
            if key in seen:
                dropped += 1
                continue
            seen.add(key)
            merged.append(activity)
    if dropped:
        logger.debug("Dropped %d duplicate activities while merging", dropped)
    return merged


def intersect_ids(remote_ids: Iterable[str], device_ids: Iterable[str]) -> list[str]:
    """Return the remote IDs that are also present on the device.

    Order follows ``remote_ids``; duplicates are collapsed.
    """
    on_device = set(device_ids)
    seen: set[str] = set()
    result: list[str] = []
    for activity_id in remote_ids:
        if activity_id in on_device and activity_id not in seen:
            seen.add(activity_id)
            result.append(activity_id)
    return result
