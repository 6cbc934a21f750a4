"""Android Health Connect adapter (platform B).

Reads ``ExerciseSession`` records and the ``HeartRate`` series that overlaps
each session through the ``HealthConnectBridge`` protocol, and normalizes
them into canonical models tagged ``health_connect``.

Health Connect does not report a session duration, so it is always derived
from the session's time span.  Calories and distance live in separate
record types and are not attached here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol, runtime_checkable

from src.activity_sync.base import (
    ActivitySource,
    DeviceWorkout,
    HealthSourceAdapter,
    HealthSourceUnavailable,
    HeartRateSample,
    NormalizedActivity,
    parse_iso,
)
from src.activity_sync.config_loader import SyncConfig, get_sync_config

logger = logging.getLogger("fitglue.adapters.health_connect")

# getSdkStatus() values
SDK_UNAVAILABLE = 1
SDK_UNAVAILABLE_PROVIDER_UPDATE_REQUIRED = 2
SDK_AVAILABLE = 3

# Health Connect ExerciseSessionRecord.exerciseType → backend activity name
EXERCISE_TYPE_MAP: dict[int, str] = {
    0: "Unknown", 1: "Badminton", 2: "Baseball", 3: "Basketball", 4: "Biking",
    5: "BikingStationary", 6: "BootCamp", 7: "Boxing", 8: "Calisthenics",
    9: "Cricket", 10: "Dancing", 11: "Elliptical", 12: "ExerciseClass",
    13: "Fencing", 14: "Football (American)", 15: "Football (Australian)",
    16: "Frisbee", 17: "Golf", 18: "GuidedBreathing", 19: "Gymnastics",
    20: "Handball", 21: "HIIT", 22: "Hiking", 23: "Hockey", 24: "HorsebackRiding",
    25: "Housework", 26: "IceSkating", 27: "JumpingRope", 28: "Kayaking",
    29: "MartialArts", 30: "Meditation", 31: "Paddling", 32: "Paragliding",
    33: "Pilates", 34: "Racquetball", 35: "RockClimbing", 36: "RollerHockey",
    37: "Rowing", 38: "RowingMachine", 39: "Rugby", 40: "Running",
    41: "RunningTreadmill", 42: "Sailing", 43: "ScubaDiving", 44: "Skating",
    45: "Skiing", 46: "SkiingCrossCountry", 47: "SkiingDownhill",
    48: "Snowboarding", 49: "Snowshoeing", 50: "Soccer", 51: "Softball",
    52: "Squash", 53: "StairClimbing", 54: "StairClimbingMachine",
    55: "StrengthTraining", 56: "Stretching", 57: "Surfing", 58: "Swimming",
    59: "SwimmingOpenWater", 60: "SwimmingPool", 61: "TableTennis", 62: "Tennis",
    63: "Volleyball", 64: "Walking", 65: "WaterPolo", 66: "Weightlifting",
    67: "Wheelchair", 68: "Yoga",
}


def map_exercise_type(exercise_type: int) -> str:
    return EXERCISE_TYPE_MAP.get(exercise_type, f"Exercise_{exercise_type}")


@runtime_checkable
class HealthConnectBridge(Protocol):
    """Interface to the device's Health Connect client."""

    async def get_sdk_status(self) -> int: ...

    async def initialize(self) -> bool: ...

    async def get_granted_permissions(self) -> list[dict]: ...

    async def read_records(self, record_type: str, start: datetime, end: datetime) -> dict: ...


class HealthConnectAdapter(HealthSourceAdapter):
    """Health Connect exercise sessions with heart rate."""

    SOURCE = ActivitySource.HEALTH_CONNECT
    DISPLAY_NAME = "Health Connect"

    def __init__(
        self, bridge: HealthConnectBridge | None = None, config: SyncConfig | None = None
    ) -> None:
        self._bridge = bridge
        self._config = config or get_sync_config()

    def is_available(self) -> bool:
        return self._bridge is not None

    async def check_availability(self) -> tuple[bool, str]:
        """Return (is_available, human-readable status)."""
        if self._bridge is None:
            return False, "Library not loaded"
        try:
            status = await self._bridge.get_sdk_status()
        except Exception as exc:
            logger.error("Failed to check availability: %s", exc)
            return False, "Error checking availability"
        if status == SDK_AVAILABLE:
            return True, "Available"
        if status == SDK_UNAVAILABLE_PROVIDER_UPDATE_REQUIRED:
            return False, "Health Connect app needs update"
        return False, "Health Connect not installed"

    async def initialize(self) -> bool:
        """Connect the client and confirm read access; safe to repeat."""
        if self._bridge is None:
            return False
        try:
            if not await self._bridge.initialize():
                return False
            granted = await self._bridge.get_granted_permissions()
        except Exception as exc:
            logger.error("Failed to initialize Health Connect: %s", exc)
            return False

        readable = {
            p.get("recordType") for p in granted or [] if p.get("accessType") == "read"
        }
        missing = [
            r for r in self._config.health_sources.health_connect_required_permissions
            if r not in readable
        ]
        if "ExerciseSession" in missing:
            logger.warning("Health Connect read permission missing for: %s", ", ".join(missing))
            return False
        if missing:
            logger.info("Health Connect optional permissions missing: %s", ", ".join(missing))
        return True

    async def query_new_activities(
        self, since: datetime, until: datetime
    ) -> list[NormalizedActivity]:
        if self._bridge is None:
            logger.warning("Health Connect not available")
            return []
        if not await self.initialize():
            raise HealthSourceUnavailable("Health Connect could not be initialized")

        result = await self._bridge.read_records("ExerciseSession", since, until)
        records = (result or {}).get("records") or []
        if not records:
            logger.info("No new workouts found")
            return []

        logger.info("Found %d workouts since %s", len(records), since.isoformat())

        activities: list[NormalizedActivity] = []
        for session in records:
            try:
                activity = await self._normalize_session(session)
            except Exception as exc:
                logger.warning("Failed to process session: %s", exc)
                continue
            if self._in_window(activity.start_time, since, until):
                activities.append(activity)

        activities.sort(key=lambda a: a.start_time)
        logger.info("Processed %d activities", len(activities))
        return activities

    async def get_workouts(self, start: datetime, end: datetime) -> list[DeviceWorkout]:
        if self._bridge is None or not await self.initialize():
            return []

        result = await self._bridge.read_records("ExerciseSession", start, end)
        workouts: list[DeviceWorkout] = []
        for session in (result or {}).get("records") or []:
            try:
                start_time, end_time = self._session_times(session)
                session_id = (session.get("metadata") or {}).get("id")
                workouts.append(
                    DeviceWorkout(
                        id=str(session_id or f"session-{int(start_time.timestamp())}"),
                        type=map_exercise_type(self._safe_int(session.get("exerciseType")) or 0),
                        start_date=start_time,
                        end_date=end_time,
                        duration=(end_time - start_time).total_seconds(),
                        source=self.SOURCE,
                    )
                )
            except Exception as exc:
                logger.warning("Skipping unreadable session: %s", exc)
        return workouts

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    async def _normalize_session(self, session: dict) -> NormalizedActivity:
        start_time, end_time = self._session_times(session)
        external_id = (session.get("metadata") or {}).get("id")

        return NormalizedActivity(
            external_id=str(external_id) if external_id else None,
            activity_name=map_exercise_type(self._safe_int(session.get("exerciseType")) or 0),
            start_time=start_time,
            end_time=end_time,
            heart_rate_samples=await self._heart_rate_samples(start_time, end_time),
            source=self.SOURCE,
        )

    @staticmethod
    def _session_times(session: dict) -> tuple[datetime, datetime]:
        start = parse_iso(session.get("startTime"))
        end = parse_iso(session.get("endTime"))
        if start is None or end is None:
            raise ValueError("session has no valid start/end time")
        return start, end

    async def _heart_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[HeartRateSample]:
        try:
            result = await self._bridge.read_records("HeartRate", start, end)
        except Exception as exc:
            logger.warning("Failed to get heart rate records: %s", exc)
            return []

        samples: list[HeartRateSample] = []
        for record in (result or {}).get("records") or []:
            for sample in record.get("samples") or []:
                timestamp = parse_iso(sample.get("time"))
                bpm = self._safe_int(sample.get("beatsPerMinute"))
                if timestamp is None or bpm is None:
                    continue
                samples.append(HeartRateSample(timestamp=timestamp, bpm=bpm))
        samples.sort(key=lambda s: s.timestamp)
        return samples
