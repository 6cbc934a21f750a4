"""Canonical data models and the health source adapter interface.

Every platform adapter subclasses HealthSourceAdapter and returns the
canonical NormalizedActivity / DeviceWorkout models.  These types are the
single source of truth consumed by the orchestrator, the local store, the
backend client, and the control API.

Wire format (backend + local store) is camelCase JSON with ISO-8601 UTC
timestamps, matching what the FitGlue backend accepts on ``/api/mobile/sync``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger("fitglue.activity_sync")


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive strings are assumed to be UTC.  Returns None if the value is
    missing or unparseable.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Provenance
# ---------------------------------------------------------------------------


class ActivitySource(str, Enum):
    """Health platform an activity was read from."""

    HEALTHKIT = "healthkit"
    HEALTH_CONNECT = "health_connect"

    @property
    def device_platform(self) -> str:
        """Device OS slug the backend uses for routing ('ios' / 'android')."""
        return "ios" if self is ActivitySource.HEALTHKIT else "android"

    @classmethod
    def for_platform(cls, platform: str) -> "ActivitySource":
        if platform == "ios":
            return cls.HEALTHKIT
        if platform == "android":
            return cls.HEALTH_CONNECT
        raise ValueError(f"Unsupported device platform: {platform!r}")


# ---------------------------------------------------------------------------
# Activity models
# ---------------------------------------------------------------------------


@dataclass
class HeartRateSample:
    timestamp: datetime
    bpm: int

    def to_json(self) -> dict:
        return {"timestamp": to_iso(self.timestamp), "bpm": self.bpm}

    @classmethod
    def from_json(cls, data: dict) -> "HeartRateSample":
        timestamp = parse_iso(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Heart rate sample has no valid timestamp: {data!r}")
        return cls(timestamp=timestamp, bpm=int(round(float(data["bpm"]))))


@dataclass
class RoutePoint:
    timestamp: datetime
    latitude: float
    longitude: float
    altitude: float | None = None

    def to_json(self) -> dict:
        data = {
            "timestamp": to_iso(self.timestamp),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
        if self.altitude is not None:
            data["altitude"] = self.altitude
        return data

    @classmethod
    def from_json(cls, data: dict) -> "RoutePoint":
        timestamp = parse_iso(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Route point has no valid timestamp: {data!r}")
        altitude = data.get("altitude")
        return cls(
            timestamp=timestamp,
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            altitude=float(altitude) if altitude is not None else None,
        )


@dataclass
class NormalizedActivity:
    """A workout ready for transmission to the backend.

    Attributes:
        activity_name:      Human-readable activity type (e.g. 'Running').
        start_time:         UTC start timestamp.
        end_time:           UTC end timestamp (never before start_time).
        source:             Health platform the record came from.
        external_id:        Platform-provided stable ID; absent for some records.
        duration:           Seconds.  Derived from the time span when omitted.
        calories:           kcal.
        distance:           Meters.
        heart_rate_samples: Ascending by timestamp, may be empty.
        route:              GPS points, or None when the platform has no route.
    """

    activity_name: str
    start_time: datetime
    end_time: datetime
    source: ActivitySource
    external_id: str | None = None
    duration: float | None = None
    calories: float | None = None
    distance: float | None = None
    heart_rate_samples: list[HeartRateSample] = field(default_factory=list)
    route: list[RoutePoint] | None = None

    def __post_init__(self) -> None:
        self.source = ActivitySource(self.source)
        if self.end_time < self.start_time:
            raise ValueError(
                f"Activity {self.external_id or self.activity_name!r} ends before it starts"
            )
        if self.duration is None:
            self.duration = (self.end_time - self.start_time).total_seconds()
        if self.duration < 0:
            raise ValueError(f"Activity duration must be >= 0, got {self.duration}")
        self.heart_rate_samples.sort(key=lambda s: s.timestamp)

    @property
    def identity(self) -> str:
        """Stable identity used to de-duplicate queued and merged batches."""
        if self.external_id:
            return f"{self.source.value}:id:{self.external_id}"
        return (
            f"{self.source.value}:{to_iso(self.start_time)}:"
            f"{to_iso(self.end_time)}:{self.activity_name}"
        )

    def to_json(self) -> dict:
        data: dict = {
            "activityName": self.activity_name,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "duration": self.duration,
            "heartRateSamples": [s.to_json() for s in self.heart_rate_samples],
            "source": self.source.value,
        }
        if self.external_id is not None:
            data["externalId"] = self.external_id
        if self.calories is not None:
            data["calories"] = self.calories
        if self.distance is not None:
            data["distance"] = self.distance
        if self.route:
            data["route"] = [p.to_json() for p in self.route]
        return data

    @classmethod
    def from_json(cls, data: dict) -> "NormalizedActivity":
        start_time = parse_iso(data.get("startTime"))
        end_time = parse_iso(data.get("endTime"))
        if start_time is None or end_time is None:
            raise ValueError(f"Activity is missing start/end time: {data!r}")
        route = data.get("route")
        return cls(
            external_id=data.get("externalId"),
            activity_name=data.get("activityName") or "Workout",
            start_time=start_time,
            end_time=end_time,
            duration=data.get("duration"),
            calories=data.get("calories"),
            distance=data.get("distance"),
            heart_rate_samples=[
                HeartRateSample.from_json(s) for s in data.get("heartRateSamples") or []
            ],
            route=[RoutePoint.from_json(p) for p in route] if route else None,
            source=ActivitySource(data["source"]),
        )


@dataclass
class DeviceWorkout:
    """A workout as listed on the device, before the user syncs it.

    This is what the workout list shows and what the manual backfill path
    accepts.  ``id`` is the device-local identifier that also ends up in the
    synced-ID set.
    """

    id: str
    type: str
    start_date: datetime
    end_date: datetime
    duration: float
    source: ActivitySource
    distance: float | None = None
    calories: float | None = None

    def __post_init__(self) -> None:
        self.source = ActivitySource(self.source)

    def to_activity(self) -> NormalizedActivity:
        return NormalizedActivity(
            external_id=self.id,
            activity_name=self.type,
            start_time=self.start_date,
            end_time=self.end_date,
            duration=self.duration,
            distance=self.distance,
            calories=self.calories,
            source=self.source,
        )

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "startDate": to_iso(self.start_date),
            "endDate": to_iso(self.end_date),
            "duration": self.duration,
            "distance": self.distance,
            "calories": self.calories,
            "source": self.source.value,
        }

    @classmethod
    def from_json(cls, data: dict) -> "DeviceWorkout":
        start_date = parse_iso(data.get("startDate"))
        end_date = parse_iso(data.get("endDate"))
        if start_date is None or end_date is None:
            raise ValueError(f"Workout is missing start/end date: {data!r}")
        return cls(
            id=str(data["id"]),
            type=data.get("type") or "Unknown",
            start_date=start_date,
            end_date=end_date,
            duration=float(data.get("duration") or 0),
            distance=data.get("distance"),
            calories=data.get("calories"),
            source=ActivitySource(data["source"]),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


NOT_AUTHENTICATED = "Not authenticated"


@dataclass
class SyncResult:
    """Outcome of a sync operation, rendered verbatim by the UI layer."""

    success: bool
    processed_count: int = 0
    skipped_count: int = 0
    error: str | None = None
    synced_at: datetime | None = None

    @classmethod
    def not_authenticated(cls) -> "SyncResult":
        return cls(success=False, error=NOT_AUTHENTICATED)


@dataclass
class SubmissionResult:
    """Outcome of one backend batch submission.

    Attributes:
        success:         True when the backend accepted the batch as a whole.
        processed_count: Records the backend accepted.
        skipped_count:   Records the backend already had or ignored.
        error:           Error detail when success is False.
        retryable:       True for transport errors and non-2xx responses; the
                         orchestrator queues the batch only in that case.
    """

    success: bool
    processed_count: int = 0
    skipped_count: int = 0
    error: str | None = None
    retryable: bool = False


# ---------------------------------------------------------------------------
# Persisted device state
# ---------------------------------------------------------------------------


CONNECTION_STATUSES = ("idle", "connecting", "connected", "error")


@dataclass
class HealthPermissions:
    workouts: bool = False
    heart_rate: bool = False
    routes: bool = False

    def to_json(self) -> dict:
        return {"workouts": self.workouts, "heartRate": self.heart_rate, "routes": self.routes}

    @classmethod
    def from_json(cls, data: dict) -> "HealthPermissions":
        return cls(
            workouts=bool(data.get("workouts", False)),
            heart_rate=bool(data.get("heartRate", False)),
            routes=bool(data.get("routes", False)),
        )


@dataclass
class HealthState:
    """Health platform initialization / permission / connection state."""

    is_initialized: bool = False
    permissions: HealthPermissions = field(default_factory=HealthPermissions)
    connection_status: str = "idle"

    def __post_init__(self) -> None:
        if self.connection_status not in CONNECTION_STATUSES:
            self.connection_status = "idle"


@dataclass
class UserPreferences:
    sync_interval_minutes: int | None = None
    notifications_enabled: bool | None = None
    auto_sync_on_wifi: bool | None = None

    def to_json(self) -> dict:
        data = {
            "syncIntervalMinutes": self.sync_interval_minutes,
            "notificationsEnabled": self.notifications_enabled,
            "autoSyncOnWifi": self.auto_sync_on_wifi,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_json(cls, data: dict) -> "UserPreferences":
        return cls(
            sync_interval_minutes=data.get("syncIntervalMinutes"),
            notifications_enabled=data.get("notificationsEnabled"),
            auto_sync_on_wifi=data.get("autoSyncOnWifi"),
        )


# ---------------------------------------------------------------------------
# Abstract health source adapter
# ---------------------------------------------------------------------------


class HealthSourceUnavailable(RuntimeError):
    """Raised when the platform health bridge is missing or not initialized."""


class HealthSourceAdapter(ABC):
    """Abstract base class for platform health data sources.

    One implementation per device OS; the active one is selected once at
    startup (see ``adapters.get_health_adapter``).

    Subclasses must implement:
        - initialize()
        - is_available()
        - query_new_activities()
        - get_workouts()

    ``query_new_activities`` must never raise for per-record failures: a
    record that cannot be normalized is logged and skipped.  It MAY raise
    when the platform query as a whole fails; the orchestrator decides what
    that means for the watermark.
    """

    #: Provenance tag stamped on every record this adapter returns.
    SOURCE: ActivitySource

    #: Human-readable name for logging and UI.
    DISPLAY_NAME: str = "Unknown Health Source"

    @abstractmethod
    async def initialize(self) -> bool:
        """Connect to the platform health store.

        Must be idempotent: background runs may start in a fresh process, so
        every query re-enters this instead of assuming app launch ran it.

        Returns:
            True if the health store is ready to be queried.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the platform bridge is present on this device."""

    @abstractmethod
    async def query_new_activities(
        self, since: datetime, until: datetime
    ) -> list[NormalizedActivity]:
        """Return normalized activities recorded in the window [since, until).

        Args:
            since: Window lower bound (the sync watermark).
            until: Window upper bound (the cycle's "now").

        Returns:
            Normalized activities, oldest first.
        """

    @abstractmethod
    async def get_workouts(self, start: datetime, end: datetime) -> list[DeviceWorkout]:
        """List device workouts between start and end for the workout list UI."""

    # ------------------------------------------------------------------
    # Shared helpers for all adapters
    # ------------------------------------------------------------------

    @staticmethod
    def _safe_int(value: object) -> int | None:
        """Safely coerce a value to int, returning None on failure."""
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _safe_float(value: object) -> float | None:
        """Safely coerce a value to float, returning None on failure."""
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _in_window(start: datetime, since: datetime, until: datetime) -> bool:
        return since <= start < until
