"""Health check endpoint, public and unauthenticated."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.dependencies import AppSettings

router = APIRouter(tags=["system"])
logger = logging.getLogger("fitglue.health")


@router.get("/health")
async def health_check(request: Request, settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also reports whether the sync engine is wired and its local store readable.
    """
    engine = getattr(request.app.state, "engine", None)
    store_ok = False
    if engine is not None:
        try:
            await engine.ctx.store.is_sync_enabled()
            store_ok = True
        except Exception as exc:
            logger.warning("Health check store probe failed: %s", exc)

    return {
        "status": "healthy" if store_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "platform": settings.platform,
        "store": "ready" if store_ok else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
