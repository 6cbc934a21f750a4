"""Apple HealthKit adapter (platform A).

HealthKit has no server-side API: workouts are read on the device through a
native bridge.  The adapter talks to that bridge through the
``HealthKitBridge`` protocol, so the same normalization runs against:

1. **Native bridge**: the device's HealthKit module (injected by the host app)
2. **XML export**: ``AppleHealthExportBridge`` reading Apple Health's export.xml

Workouts come back as loosely-shaped dicts (field names differ between
bridge versions), and are normalized into canonical NormalizedActivity /
DeviceWorkout models tagged ``healthkit``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable
from xml.etree import ElementTree as ET

from src.activity_sync.base import (
    ActivitySource,
    DeviceWorkout,
    HealthSourceAdapter,
    HealthSourceUnavailable,
    HeartRateSample,
    NormalizedActivity,
    RoutePoint,
    parse_iso,
)
from src.activity_sync.config_loader import SyncConfig, get_sync_config

logger = logging.getLogger("fitglue.adapters.apple_health")

_HK_HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
_HK_WORKOUT_PREFIX = "HKWorkoutActivityType"

# HKWorkoutActivityType → backend activity name
_WORKOUT_TYPE_MAP: dict[str, str] = {
    "HKWorkoutActivityTypeRunning": "Running",
    "HKWorkoutActivityTypeWalking": "Walking",
    "HKWorkoutActivityTypeCycling": "Cycling",
    "HKWorkoutActivityTypeSwimming": "Swimming",
    "HKWorkoutActivityTypeTraditionalStrengthTraining": "WeightTraining",
    "HKWorkoutActivityTypeFunctionalStrengthTraining": "WeightTraining",
    "HKWorkoutActivityTypeElliptical": "Elliptical",
    "HKWorkoutActivityTypeRowing": "Rowing",
    "HKWorkoutActivityTypeStairClimbing": "StairClimbing",
    "HKWorkoutActivityTypeYoga": "Yoga",
    "HKWorkoutActivityTypeHiking": "Hiking",
    "HKWorkoutActivityTypeCrossTraining": "CrossTraining",
    "HKWorkoutActivityTypeMixedCardio": "Cardio",
    "HKWorkoutActivityTypeHighIntensityIntervalTraining": "HIIT",
    "HKWorkoutActivityTypeCoreTraining": "CoreTraining",
    "HKWorkoutActivityTypeFlexibility": "Flexibility",
}

# Unit conversions for export.xml attributes
_DISTANCE_TO_METERS: dict[str, float] = {"m": 1.0, "km": 1000.0, "mi": 1609.344, "ft": 0.3048}
_ENERGY_TO_KCAL: dict[str, float] = {"kcal": 1.0, "Cal": 1.0, "kJ": 0.239006}
_DURATION_TO_SECONDS: dict[str, float] = {"s": 1.0, "min": 60.0, "hr": 3600.0}


def map_activity_type(hk_type: str) -> str:
    """Map a HealthKit activity type identifier to a readable name."""
    return _WORKOUT_TYPE_MAP.get(hk_type) or hk_type.replace(_HK_WORKOUT_PREFIX, "")


@runtime_checkable
class HealthKitBridge(Protocol):
    """Interface to the device's HealthKit store."""

    async def is_health_data_available(self) -> bool: ...

    async def init_health_kit(self, read_permissions: list[str]) -> None: ...

    async def get_workout_samples(self, start: datetime, end: datetime) -> list[dict]: ...

    async def get_heart_rate_samples(self, start: datetime, end: datetime) -> list[dict]: ...

    async def get_workout_route(
        self, workout_id: str | None, start: datetime, end: datetime
    ) -> list[dict]: ...


class AppleHealthAdapter(HealthSourceAdapter):
    """HealthKit workouts, heart rate, and routes.

    A missing bridge (simulator, non-iOS host) is not an error: queries
    return an empty list.
    """

    SOURCE = ActivitySource.HEALTHKIT
    DISPLAY_NAME = "Apple Health"

    def __init__(
        self, bridge: HealthKitBridge | None = None, config: SyncConfig | None = None
    ) -> None:
        self._bridge = bridge
        self._config = config or get_sync_config()

    def is_available(self) -> bool:
        return self._bridge is not None

    async def initialize(self) -> bool:
        """Request read access; safe to call before every query."""
        if self._bridge is None:
            return False
        try:
            if not await self._bridge.is_health_data_available():
                logger.warning("HealthKit is not available on this device")
                return False
            await self._bridge.init_health_kit(
                self._config.health_sources.healthkit_read_permissions
            )
        except Exception as exc:
            logger.error("Failed to initialize HealthKit: %s", exc)
            return False
        logger.debug("HealthKit initialized")
        return True

    async def query_new_activities(
        self, since: datetime, until: datetime
    ) -> list[NormalizedActivity]:
        if self._bridge is None:
            logger.warning("HealthKit bridge not available")
            return []
        if not await self.initialize():
            raise HealthSourceUnavailable("HealthKit could not be initialized")

        results = await self._bridge.get_workout_samples(since, until)
        if not results:
            return []

        logger.info("Found %d workouts since %s", len(results), since.isoformat())

        activities: list[NormalizedActivity] = []
        for workout in results:
            try:
                activity = await self._normalize_workout(workout)
            except Exception as exc:
                logger.warning("Failed to process workout %r: %s", workout.get("id"), exc)
                continue
            if self._in_window(activity.start_time, since, until):
                activities.append(activity)

        activities.sort(key=lambda a: a.start_time)
        logger.info("Processed %d activities", len(activities))
        return activities

    async def get_workouts(self, start: datetime, end: datetime) -> list[DeviceWorkout]:
        if self._bridge is None or not await self.initialize():
            return []

        workouts: list[DeviceWorkout] = []
        for raw in await self._bridge.get_workout_samples(start, end):
            try:
                start_date, end_date = self._workout_times(raw)
                workout_id = raw.get("uuid") or raw.get("id")
                workouts.append(
                    DeviceWorkout(
                        id=str(workout_id or _fallback_id(raw, start_date)),
                        type=map_activity_type(self._workout_type(raw)),
                        start_date=start_date,
                        end_date=end_date,
                        duration=self._duration(raw, start_date, end_date),
                        distance=self._safe_float(raw.get("totalDistance", raw.get("distance"))),
                        calories=self._calories(raw),
                        source=self.SOURCE,
                    )
                )
            except Exception as exc:
                logger.warning("Skipping unreadable workout: %s", exc)
        return workouts

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    async def _normalize_workout(self, workout: dict) -> NormalizedActivity:
        start_time, end_time = self._workout_times(workout)
        external_id = workout.get("id") or workout.get("uuid")

        heart_rate = await self._heart_rate_samples(start_time, end_time)
        route = await self._route(external_id, start_time, end_time)

        return NormalizedActivity(
            external_id=str(external_id) if external_id else None,
            activity_name=map_activity_type(self._workout_type(workout)),
            start_time=start_time,
            end_time=end_time,
            duration=self._duration(workout, start_time, end_time),
            calories=self._calories(workout),
            distance=self._safe_float(workout.get("distance", workout.get("totalDistance"))),
            heart_rate_samples=heart_rate,
            route=route or None,
            source=self.SOURCE,
        )

    @staticmethod
    def _workout_times(workout: dict) -> tuple[datetime, datetime]:
        start = parse_iso(workout.get("start") or workout.get("startDate"))
        end = parse_iso(workout.get("end") or workout.get("endDate"))
        if start is None or end is None:
            raise ValueError("workout has no valid start/end date")
        return start, end

    @staticmethod
    def _workout_type(workout: dict) -> str:
        return (
            workout.get("activityName")
            or workout.get("workoutActivityType")
            or workout.get("type")
            or "Workout"
        )

    def _duration(self, workout: dict, start: datetime, end: datetime) -> float:
        duration = self._safe_float(workout.get("duration"))
        return duration if duration else (end - start).total_seconds()

    def _calories(self, workout: dict) -> int | None:
        calories = self._safe_float(workout.get("calories", workout.get("totalEnergyBurned")))
        return round(calories) if calories else None

    async def _heart_rate_samples(
        self, start: datetime, end: datetime
    ) -> list[HeartRateSample]:
        try:
            results = await self._bridge.get_heart_rate_samples(start, end)
        except Exception as exc:
            logger.warning("Failed to get heart rate samples: %s", exc)
            return []

        samples = []
        for sample in results or []:
            timestamp = parse_iso(sample.get("startDate") or sample.get("timestamp"))
            bpm = self._safe_float(sample.get("value", sample.get("bpm")))
            if timestamp is None or bpm is None:
                continue
            samples.append(HeartRateSample(timestamp=timestamp, bpm=round(bpm)))
        return samples

    async def _route(
        self, workout_id: str | None, start: datetime, end: datetime
    ) -> list[RoutePoint]:
        try:
            points = await self._bridge.get_workout_route(workout_id, start, end)
        except Exception as exc:
            logger.debug("No route for workout %s: %s", workout_id, exc)
            return []
        route = []
        for point in points or []:
            try:
                route.append(RoutePoint.from_json(point))
            except (KeyError, TypeError, ValueError):
                continue
        return route


def _fallback_id(workout: dict, start: datetime) -> str:
    return f"{AppleHealthAdapter._workout_type(workout)}-{int(start.timestamp())}"


# ---------------------------------------------------------------------------
# export.xml bridge
# ---------------------------------------------------------------------------


def _parse_export_date(value: str | None) -> datetime | None:
    """Parse export.xml dates such as ``2026-02-23 06:00:00 -0800``."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S %z").astimezone(timezone.utc)
    except ValueError:
        return parse_iso(value.replace(" ", "T", 1))


def _scaled(value: str | None, unit: str | None, table: dict[str, float]) -> float | None:
    if not value:
        return None
    try:
        return float(value) * table.get(unit or "", 1.0)
    except ValueError:
        return None


class AppleHealthExportBridge:
    """HealthKitBridge backed by Apple Health's export.xml.

    The export is parsed once, lazily, on first query.  Routes are not
    included in export.xml (they live in separate GPX files) so
    ``get_workout_route`` always returns an empty list.
    """

    def __init__(self, source: Path | bytes) -> None:
        self._source = source
        self._workouts: list[dict] | None = None
        self._heart_rate: list[dict] = []

    async def is_health_data_available(self) -> bool:
        return isinstance(self._source, bytes) or Path(self._source).exists()

    async def init_health_kit(self, read_permissions: list[str]) -> None:
        if self._workouts is None:
            self._parse()

    async def get_workout_samples(self, start: datetime, end: datetime) -> list[dict]:
        if self._workouts is None:
            self._parse()
        return [
            w for w in self._workouts or []
            if start <= parse_iso(w["startDate"]) <= end
        ]

    async def get_heart_rate_samples(self, start: datetime, end: datetime) -> list[dict]:
        return [
            {"startDate": s["startDate"], "value": s["value"]}
            for s in self._heart_rate
            if start <= s["_ts"] <= end
        ]

    async def get_workout_route(
        self, workout_id: str | None, start: datetime, end: datetime
    ) -> list[dict]:
        return []

    def _parse(self) -> None:
        xml_bytes = (
            self._source if isinstance(self._source, bytes) else Path(self._source).read_bytes()
        )
        try:
            root = ET.fromstring(xml_bytes)
        except ET.ParseError as exc:
            logger.error("Apple Health XML parse error: %s", exc)
            raise ValueError(f"Invalid Apple Health XML: {exc}") from exc

        workouts: list[dict] = []
        for workout in root.findall("Workout"):
            start = _parse_export_date(workout.get("startDate"))
            end = _parse_export_date(workout.get("endDate"))
            if start is None or end is None:
                continue
            external_id = None
            for entry in workout.findall("MetadataEntry"):
                if entry.get("key") == "HKExternalUUID":
                    external_id = entry.get("value")
            workouts.append({
                "id": external_id,
                "workoutActivityType": workout.get("workoutActivityType", ""),
                "duration": _scaled(
                    workout.get("duration"), workout.get("durationUnit"), _DURATION_TO_SECONDS
                ),
                "totalEnergyBurned": _scaled(
                    workout.get("totalEnergyBurned"),
                    workout.get("totalEnergyBurnedUnit"),
                    _ENERGY_TO_KCAL,
                ),
                "totalDistance": _scaled(
                    workout.get("totalDistance"),
                    workout.get("totalDistanceUnit"),
                    _DISTANCE_TO_METERS,
                ),
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
            })

        heart_rate: list[dict] = []
        for record in root.findall("Record"):
            if record.get("type") != _HK_HEART_RATE:
                continue
            timestamp = _parse_export_date(record.get("startDate"))
            if timestamp is None or not record.get("value"):
                continue
            heart_rate.append(
                {"_ts": timestamp, "startDate": timestamp.isoformat(), "value": record.get("value")}
            )
        heart_rate.sort(key=lambda s: s["_ts"])

        self._workouts = workouts
        self._heart_rate = heart_rate
        logger.info(
            "Apple Health XML: parsed %d workouts and %d heart rate records",
            len(workouts), len(heart_rate),
        )
