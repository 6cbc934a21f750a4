"""FitGlue Sync control API: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.activity_sync.engine import SyncEngine, build_engine
from src.config import get_settings
from src.routers import health, sync, workouts

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("fitglue")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting FitGlue Sync v%s [%s, %s]",
        settings.app_version,
        settings.environment,
        settings.platform,
    )
    engine: SyncEngine | None = getattr(app.state, "engine", None)
    if engine is None:
        engine = build_engine(settings)
        app.state.engine = engine
        await engine.connect_health_source()
        if settings.background_sync_enabled:
            engine.background.register_on_boot()
    yield
    await engine.background.unregister()
    logger.info("FitGlue Sync shut down")


# ---------- App factory ----------

def create_app(engine: SyncEngine | None = None) -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="FitGlue Sync API",
        description=(
            "Local control surface for the activity sync engine: manual and "
            "background sync, resync, workout listing and per-workout backfill."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(workouts.router, prefix=v1_prefix)

    return app


app = create_app()
