"""
Main FastAPI application for Redzone Fantasy.
"""
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from redzone import __version__
from redzone.api.routes import router
from redzone.config import Settings, get_settings
from redzone.core.logging import configure_logging
from redzone.core.sources import build_registry
from redzone.models.database import Database
from redzone.services.ingestion.orchestrator import IngestionOrchestrator
from redzone.services.scheduler import IngestionScheduler
from redzone.storage.content_store import ContentStore

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings)

    database = Database(settings.database_url, echo=settings.debug)
    if not database.is_configured:
        logger.warning("DATABASE_URL not set; content queries will return empty pages")

    store = ContentStore(database)
    registry = build_registry(settings)
    orchestrator = IngestionOrchestrator(registry, store, settings=settings)

    app.state.database = database
    app.state.store = store
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.scheduler = None

    if settings.scheduler_enabled:
        scheduler = IngestionScheduler(orchestrator, settings.schedule_cron)
        scheduler.start()
        app.state.scheduler = scheduler

    logger.info(
        "Application started",
        environment=settings.environment,
        sources=len(orchestrator.modules),
        scheduler_enabled=settings.scheduler_enabled,
    )

    yield

    # Shutdown
    logger.info("Shutting down")
    if app.state.scheduler:
        app.state.scheduler.stop()
    await database.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Fantasy football content aggregated from feeds and video channels.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "redzone-fantasy",
            "version": __version__,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "redzone.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
