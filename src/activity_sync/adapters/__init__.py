"""Health source adapters.

Each adapter implements the HealthSourceAdapter ABC and handles:
- Connecting to the platform health store (idempotent, re-entered per query)
- Querying workouts for a time window
- Normalizing platform-specific records into canonical models

Available adapters:
    AppleHealthAdapter   - iOS HealthKit (native bridge or export.xml)
    HealthConnectAdapter - Android Health Connect
"""

from src.activity_sync.adapters.apple_health import (
    AppleHealthAdapter,
    AppleHealthExportBridge,
    HealthKitBridge,
)
from src.activity_sync.adapters.health_connect import HealthConnectAdapter, HealthConnectBridge
from src.activity_sync.base import HealthSourceAdapter
from src.activity_sync.config_loader import SyncConfig

__all__ = [
    "AppleHealthAdapter",
    "AppleHealthExportBridge",
    "HealthKitBridge",
    "HealthConnectAdapter",
    "HealthConnectBridge",
    "get_health_adapter",
]

# Registry: device platform → adapter class
ADAPTER_REGISTRY: dict[str, type[HealthSourceAdapter]] = {
    "ios": AppleHealthAdapter,
    "android": HealthConnectAdapter,
}


def get_health_adapter(
    platform: str, bridge: object | None = None, config: SyncConfig | None = None
) -> HealthSourceAdapter:
    """Build the adapter for a device platform.

    Called once at startup; the instance is then passed around in the sync
    context.

    Args:
        platform: 'ios' or 'android'.
        bridge:   Platform bridge to inject (None = platform library missing).
        config:   Engine tunables (permission lists).  Defaults to the
                  bundled config.

    Raises:
        KeyError: If the platform is not registered.
    """
    if platform not in ADAPTER_REGISTRY:
        raise KeyError(
            f"No health adapter registered for platform '{platform}'. "
            f"Available: {list(ADAPTER_REGISTRY)}"
        )
    return ADAPTER_REGISTRY[platform](bridge, config)
