"""Persistent local store for sync state.

A durable key-value store that survives app restarts.  It holds the sync
watermark, the retry queue, the synced-ID set, the cached workout list, the
sync-enabled flag, the persisted health platform state, and user preferences.

Every key is independently clearable and ``clear_all()`` wipes all of them
(logout).  Store I/O failures never propagate: they are logged and the
operation falls back to the key's default value.

Values are JSON strings.  ``SqliteLocalStore`` keeps them in a single
``kv_store`` table; ``MemoryLocalStore`` keeps them in a dict and is meant
for tests and ephemeral runs.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from src.activity_sync.base import (
    DeviceWorkout,
    HealthPermissions,
    HealthState,
    NormalizedActivity,
    UserPreferences,
    parse_iso,
    to_iso,
    utc_now,
)
from src.activity_sync.sync.dedup import merge_unique

logger = logging.getLogger("fitglue.store")

# Storage keys
KEYS = {
    "LAST_SYNC_DATE": "@fitglue/last_sync_date",
    "SYNC_ENABLED": "@fitglue/sync_enabled",
    "USER_PREFERENCES": "@fitglue/user_preferences",
    "PENDING_ACTIVITIES": "@fitglue/pending_activities",
    "SYNCED_IDS": "@fitglue/synced_ids",
    "CACHED_WORKOUTS": "@fitglue/cached_workouts",
    "HEALTH_INITIALIZED": "@fitglue/health_initialized",
    "HEALTH_PERMISSIONS": "@fitglue/health_permissions",
    "HEALTH_CONNECTION_STATUS": "@fitglue/health_connection_status",
}

# A mutation maps key → new JSON value, or None to delete the key.
Mutation = dict[str, "str | None"]

_STORE_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError, KeyError)


class LocalStore(ABC):
    """Key-scoped sync state on top of three storage primitives.

    Subclasses implement ``_read``, ``_write`` (atomic multi-key mutation),
    and ``_update`` (atomic read-modify-write of one key).  The primitives are
    blocking and are run in a worker thread so callers suspend instead of
    blocking the event loop.
    """

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _read(self, key: str) -> str | None:
        """Return the raw JSON value for a key, or None if absent."""

    @abstractmethod
    def _write(self, mutation: Mutation) -> None:
        """Apply every set/delete in ``mutation`` as one transaction."""

    @abstractmethod
    def _update(self, key: str, fn: Callable[[str | None], str | None]) -> None:
        """Atomically replace a key's value with ``fn(old_value)``."""

    async def _get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def _apply(self, mutation: Mutation) -> None:
        await asyncio.to_thread(self._write, mutation)

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    async def get_watermark(self) -> datetime | None:
        """Return the last successful sync timestamp, or None if never synced.

        Stored values that fail to parse are treated as absent.
        """
        try:
            return parse_iso(json.loads(await self._get(KEYS["LAST_SYNC_DATE"]) or "null"))
        except _STORE_ERRORS as exc:
            logger.error("Failed to get last sync date: %s", exc)
            return None

    async def set_watermark(self, value: datetime) -> None:
        try:
            await self._apply({KEYS["LAST_SYNC_DATE"]: json.dumps(to_iso(value))})
        except _STORE_ERRORS as exc:
            logger.error("Failed to set last sync date: %s", exc)

    async def commit_success(self, watermark: datetime) -> bool:
        """Advance the watermark and clear the retry queue in one transaction.

        Returns:
            True if the commit was persisted.
        """
        try:
            await self._apply({
                KEYS["LAST_SYNC_DATE"]: json.dumps(to_iso(watermark)),
                KEYS["PENDING_ACTIVITIES"]: None,
            })
            return True
        except _STORE_ERRORS as exc:
            logger.error("Failed to commit sync cycle: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Sync enabled flag
    # ------------------------------------------------------------------

    async def is_sync_enabled(self) -> bool:
        try:
            return await self._get(KEYS["SYNC_ENABLED"]) != "false"  # default enabled
        except _STORE_ERRORS as exc:
            logger.error("Failed to get sync enabled status: %s", exc)
            return True

    async def set_sync_enabled(self, enabled: bool) -> None:
        try:
            await self._apply({KEYS["SYNC_ENABLED"]: "true" if enabled else "false"})
        except _STORE_ERRORS as exc:
            logger.error("Failed to set sync enabled status: %s", exc)

    # ------------------------------------------------------------------
    # Retry queue
    # ------------------------------------------------------------------

    async def get_queue(self) -> list[NormalizedActivity]:
        """Return queued activities, oldest first.  Corrupt entries are skipped."""
        try:
            raw = json.loads(await self._get(KEYS["PENDING_ACTIVITIES"]) or "[]")
        except _STORE_ERRORS as exc:
            logger.error("Failed to get queued activities: %s", exc)
            return []
        return _decode_activities(raw)

    async def append_to_queue(self, activities: list[NormalizedActivity]) -> int:
        """Append activities to the retry queue.

        The queue never holds two entries with the same identity, so
        re-queuing a batch that already contains the queue is a no-op for
        those entries.

        Returns:
            Queue size after the append.
        """
        if not activities:
            return len(await self.get_queue())

        size = 0

        def _merge(old: str | None) -> str:
            nonlocal size
            existing = _decode_activities(json.loads(old or "[]"))
            combined = merge_unique(existing, activities)
            size = len(combined)
            return json.dumps([a.to_json() for a in combined])

        try:
            await asyncio.to_thread(self._update, KEYS["PENDING_ACTIVITIES"], _merge)
        except _STORE_ERRORS as exc:
            logger.error("Failed to queue activities: %s", exc)
            return 0
        logger.info("Queued %d activities (total: %d)", len(activities), size)
        return size

    async def clear_queue(self) -> None:
        try:
            await self._apply({KEYS["PENDING_ACTIVITIES"]: None})
        except _STORE_ERRORS as exc:
            logger.error("Failed to clear queue: %s", exc)

    # ------------------------------------------------------------------
    # Synced-ID set
    # ------------------------------------------------------------------

    async def get_synced_ids(self) -> set[str]:
        try:
            return set(json.loads(await self._get(KEYS["SYNCED_IDS"]) or "[]"))
        except _STORE_ERRORS as exc:
            logger.error("Failed to get synced IDs: %s", exc)
            return set()

    async def add_synced_id(self, activity_id: str) -> None:
        await self.add_synced_ids([activity_id])

    async def add_synced_ids(self, activity_ids: list[str]) -> None:
        if not activity_ids:
            return

        def _add(old: str | None) -> str:
            ids = json.loads(old or "[]")
            ids.extend(i for i in activity_ids if i not in ids)
            return json.dumps(ids)

        try:
            await asyncio.to_thread(self._update, KEYS["SYNCED_IDS"], _add)
        except _STORE_ERRORS as exc:
            logger.error("Failed to add synced IDs: %s", exc)

    # ------------------------------------------------------------------
    # Cached workout list
    # ------------------------------------------------------------------

    async def get_cached_activities(self) -> list[DeviceWorkout]:
        try:
            raw = json.loads(await self._get(KEYS["CACHED_WORKOUTS"]) or "[]")
        except _STORE_ERRORS as exc:
            logger.error("Failed to get cached workouts: %s", exc)
            return []
        workouts = []
        for item in raw:
            try:
                workouts.append(DeviceWorkout.from_json(item))
            except _STORE_ERRORS as exc:
                logger.warning("Dropping corrupt cached workout: %s", exc)
        return workouts

    async def set_cached_activities(self, workouts: list[DeviceWorkout]) -> None:
        try:
            await self._apply(
                {KEYS["CACHED_WORKOUTS"]: json.dumps([w.to_json() for w in workouts])}
            )
        except _STORE_ERRORS as exc:
            logger.error("Failed to cache workouts: %s", exc)

    # ------------------------------------------------------------------
    # Health platform state
    # ------------------------------------------------------------------

    async def get_health_state(self) -> HealthState:
        try:
            initialized = await self._get(KEYS["HEALTH_INITIALIZED"])
            perms = await self._get(KEYS["HEALTH_PERMISSIONS"])
            status = await self._get(KEYS["HEALTH_CONNECTION_STATUS"])
        except _STORE_ERRORS as exc:
            logger.error("Failed to get health state: %s", exc)
            return HealthState()

        permissions = HealthPermissions()
        if perms:
            try:
                permissions = HealthPermissions.from_json(json.loads(perms))
            except (ValueError, TypeError, AttributeError):
                pass  # corrupted, use defaults

        return HealthState(
            is_initialized=initialized == "true",
            permissions=permissions,
            connection_status=status or "idle",
        )

    async def set_health_state(self, state: HealthState) -> None:
        try:
            await self._apply({
                KEYS["HEALTH_INITIALIZED"]: "true" if state.is_initialized else "false",
                KEYS["HEALTH_PERMISSIONS"]: json.dumps(state.permissions.to_json()),
                KEYS["HEALTH_CONNECTION_STATUS"]: state.connection_status,
            })
        except _STORE_ERRORS as exc:
            logger.error("Failed to set health state: %s", exc)

    # ------------------------------------------------------------------
    # User preferences
    # ------------------------------------------------------------------

    async def get_user_preferences(self) -> UserPreferences:
        try:
            return UserPreferences.from_json(
                json.loads(await self._get(KEYS["USER_PREFERENCES"]) or "{}")
            )
        except (*_STORE_ERRORS, AttributeError) as exc:
            logger.error("Failed to get user preferences: %s", exc)
            return UserPreferences()

    async def set_user_preferences(self, preferences: UserPreferences) -> None:
        try:
            await self._apply({KEYS["USER_PREFERENCES"]: json.dumps(preferences.to_json())})
        except _STORE_ERRORS as exc:
            logger.error("Failed to set user preferences: %s", exc)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def clear_all(self) -> None:
        """Remove every key this store manages."""
        try:
            await self._apply({key: None for key in KEYS.values()})
            logger.info("Cleared all local sync state")
        except _STORE_ERRORS as exc:
            logger.error("Failed to clear storage: %s", exc)


def _decode_activities(raw: list) -> list[NormalizedActivity]:
    activities = []
    for item in raw:
        try:
            activities.append(NormalizedActivity.from_json(item))
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Dropping corrupt queued activity: %s", exc)
    return activities


class SqliteLocalStore(LocalStore):
    """SQLite-backed store; one row per key."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Open a connection, yield a cursor, commit on success, roll back on error."""
        with self._lock:
            conn = sqlite3.connect(str(self.db_path))
            try:
                cursor = conn.cursor()
                try:
                    yield cursor
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
                finally:
                    cursor.close()
            finally:
                conn.close()

    def _init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except (sqlite3.Error, OSError) as exc:
            logger.error("Failed to initialize local store at %s: %s", self.db_path, exc)

    def _read(self, key: str) -> str | None:
        with self._cursor() as cursor:
            cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def _write(self, mutation: Mutation) -> None:
        now = to_iso(utc_now())
        with self._cursor() as cursor:
            for key, value in mutation.items():
                _write_row(cursor, key, value, now)

    def _update(self, key: str, fn: Callable[[str | None], str | None]) -> None:
        now = to_iso(utc_now())
        with self._cursor() as cursor:
            cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            _write_row(cursor, key, fn(row[0] if row else None), now)


def _write_row(cursor: sqlite3.Cursor, key: str, value: str | None, now: str) -> None:
    if value is None:
        cursor.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return
    cursor.execute(
        """
        INSERT INTO kv_store (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, value, now),
    )


class MemoryLocalStore(LocalStore):
    """In-process store.  State is lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def _write(self, mutation: Mutation) -> None:
        with self._lock:
            staged = dict(self._data)
            for key, value in mutation.items():
                if value is None:
                    staged.pop(key, None)
                else:
                    staged[key] = value
            self._data = staged

    def _update(self, key: str, fn: Callable[[str | None], str | None]) -> None:
        with self._lock:
            value = fn(self._data.get(key))
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
