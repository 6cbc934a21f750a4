"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.activity_sync.engine import SyncEngine
from src.config import Settings, get_settings


async def get_engine(request: Request) -> SyncEngine:
    """Return the sync engine built by the app lifespan.

    Tests swap in their own engine by assigning ``app.state.engine``.
    """
    engine: SyncEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sync engine not ready")
    return engine


# Annotated shortcuts for route signatures
Engine = Annotated[SyncEngine, Depends(get_engine)]
AppSettings = Annotated[Settings, Depends(get_settings)]
