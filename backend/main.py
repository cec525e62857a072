"""Lapse: Main application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from alembic import command
from alembic.config import Config
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import ALLOWED_ORIGINS, CLEANUP_INTERVAL_SECONDS, LOG_LEVEL, REAPER_ENABLED
from api.download.controllers.download_controller import router as download_router
from api.objects.controllers.objects_controller import router as objects_router
from api.objects.services.registry import ObjectRegistry
from api.objects.services.registry_provider import build_registry
from api.status.controllers.status_controller import router as status_router
from api.upload.controllers.upload_controller import router as upload_router
from cleanup import Reaper

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def run_migrations():
    """Run Alembic migrations on startup."""
    try:
        alembic_ini = Path(__file__).parent / "alembic.ini"
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option(
            "script_location", str(Path(__file__).parent / "db_migrations")
        )
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.warning("Migration failed, creating tables directly: %s", e)
        from database import init_db

        init_db()


def create_app(
    registry: ObjectRegistry | None = None,
    reaper_enabled: bool = REAPER_ENABLED,
) -> FastAPI:
    """Build the app around ``registry`` (the configured one when omitted)."""
    if registry is None:
        run_migrations()
        registry = build_registry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper = Reaper(registry, CLEANUP_INTERVAL_SECONDS) if reaper_enabled else None
        if reaper:
            reaper.start()
        try:
            yield
        finally:
            if reaper:
                await reaper.stop()
            await registry.aclose()

    app = FastAPI(title="Lapse", version=VERSION, lifespan=lifespan)
    app.state.registry = registry

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials="*" not in ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/")
    async def index():
        return {
            "message": "File sharing with expiring links",
            "version": VERSION,
            "endpoints": {
                "upload": "POST /upload",
                "download": "GET /download/{object_id}",
                "status": "GET /status/{object_id}",
                "cleanup": "POST /api/cleanup",
            },
        }

    app.include_router(objects_router)
    app.include_router(upload_router)
    app.include_router(download_router)
    app.include_router(status_router)
    return app


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
