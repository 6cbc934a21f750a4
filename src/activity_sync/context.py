"""Explicitly constructed collaborators for the sync engine.

Everything the engine touches (the local store, the health source, the
backend, auth, config, clock) arrives through one ``SyncContext`` instead
of module-level singletons, so tests can build a fully deterministic
engine.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from src.activity_sync.adapters import AppleHealthExportBridge, get_health_adapter
from src.activity_sync.auth import AuthProvider, FirebaseTokenProvider, StaticTokenProvider
from src.activity_sync.base import ActivitySource, HealthSourceAdapter, utc_now
from src.activity_sync.client import BackendClient, DeviceInfo
from src.activity_sync.config_loader import SyncConfig, get_sync_config
from src.activity_sync.store import LocalStore, SqliteLocalStore
from src.config import Settings

logger = logging.getLogger("fitglue.context")


@dataclass
class SyncContext:
    """Collaborators shared by the orchestrator, backfill, and reconciliation.

    Attributes:
        store:      Durable sync state.
        health:     Health source adapter for this device's platform.
        backend:    Backend submission client.
        auth:       Bearer token provider.
        config:     Engine tunables.
        clock:      Returns the current UTC time.
        state_lock: Guards read-modify-write sequences on store state.
    """

    store: LocalStore
    health: HealthSourceAdapter
    backend: BackendClient
    auth: AuthProvider
    config: SyncConfig = field(default_factory=get_sync_config)
    clock: Callable[[], datetime] = utc_now
    state_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def source(self) -> ActivitySource:
        return self.health.SOURCE

    async def resolve_token(self) -> str | None:
        """Return a bearer token, or None if the user is not authenticated."""
        try:
            return await self.auth.get_token()
        except Exception as exc:
            logger.error("Failed to get auth token: %s", exc)
            return None


def build_sync_context(settings: Settings, health_bridge: object | None = None) -> SyncContext:
    """Wire a production SyncContext from environment settings.

    Args:
        settings:      Application settings.
        health_bridge: Native platform bridge, if the host provides one.  On
                       iOS without a bridge, ``healthkit_export_path`` selects
                       the export.xml bridge.
    """
    if health_bridge is None and settings.platform == "ios" and settings.healthkit_export_path:
        health_bridge = AppleHealthExportBridge(settings.healthkit_export_path)

    if settings.firebase_refresh_token:
        auth: AuthProvider = FirebaseTokenProvider(
            api_key=settings.firebase_api_key,
            refresh_token=settings.firebase_refresh_token,
            timeout=settings.http_timeout_seconds,
        )
    else:
        auth = StaticTokenProvider(settings.auth_token)

    config = get_sync_config()
    ctx = SyncContext(
        store=SqliteLocalStore(settings.store_path),
        health=get_health_adapter(settings.platform, health_bridge, config),
        backend=BackendClient(
            settings.resolved_api_base_url,
            device=DeviceInfo(os_version=settings.os_version, app_version=settings.app_version),
            config=config.backend,
            timeout=settings.http_timeout_seconds,
        ),
        auth=auth,
        config=config,
    )
    logger.info(
        "Sync context ready: platform=%s backend=%s store=%s",
        settings.platform, settings.resolved_api_base_url, settings.store_path,
    )
    return ctx

