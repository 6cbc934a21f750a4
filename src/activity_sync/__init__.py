"""FitGlue Activity Sync Engine.

Mirrors workouts from the device health platform (HealthKit or Health
Connect) into the FitGlue backend, exactly once, across network failures
and app restarts.

Subpackages:
    adapters/ - Health source adapters (Apple Health, Health Connect)
    sync/     - Orchestrator, manual backfill, reconciliation, background trigger

Core modules:
    base          - Canonical models and the HealthSourceAdapter ABC
    store         - Durable key-value sync state (SQLite)
    client        - Backend submission client
    auth          - Bearer token providers
    context       - Collaborator wiring
    engine        - Public facade
    config_loader - Load/validate/reload sync_config.yaml
"""

from src.activity_sync.base import (
    ActivitySource,
    DeviceWorkout,
    HealthSourceAdapter,
    NormalizedActivity,
    SyncResult,
)
from src.activity_sync.config_loader import SyncConfig, get_sync_config
from src.activity_sync.engine import SyncEngine, build_engine

__all__ = [
    "ActivitySource",
    "DeviceWorkout",
    "HealthSourceAdapter",
    "NormalizedActivity",
    "SyncResult",
    "SyncConfig",
    "get_sync_config",
    "SyncEngine",
    "build_engine",
]
