"""
FastAPI routes for the Redzone Fantasy API.
"""

import math
import secrets
import time
from datetime import datetime, timezone
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from redzone.config import Settings
from redzone.core.exceptions import RedzoneError, SourceNotFoundError
from redzone.core.logging import read_recent_log_events
from redzone.core.sources import SourceRegistry
from redzone.models.domain import (
    CamelModel,
    ContentFilters,
    ContentKind,
    ContentResponse,
    DateRange,
    ModuleStatus,
    Pagination,
    SourceCount,
    SourceListing,
    SourcesResponse,
    SourceStats,
)
from redzone.services.ingestion.base import IngestionOutcome
from redzone.services.ingestion.orchestrator import IngestionOrchestrator, RunSummary
from redzone.services.scheduler import next_run_time
from redzone.storage.content_store import ContentStore

logger = structlog.get_logger(__name__)
router = APIRouter()


# ============================================================================
# Dependencies
# ============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def get_store(request: Request) -> ContentStore:
    return request.app.state.store


def get_registry(request: Request) -> SourceRegistry:
    return request.app.state.registry


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
OrchestratorDep = Annotated[IngestionOrchestrator, Depends(get_orchestrator)]
StoreDep = Annotated[ContentStore, Depends(get_store)]
RegistryDep = Annotated[SourceRegistry, Depends(get_registry)]


class IngestRequest(CamelModel):
    source_id: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _breakdown(outcomes: list[IngestionOutcome]) -> list[dict]:
    breakdown = []
    for o in outcomes:
        entry = {
            "sourceId": o.source_id,
            "success": o.success,
            "processed": o.items_processed,
            "saved": o.items_saved,
        }
        if o.errors:
            entry["errors"] = o.errors
        breakdown.append(entry)
    return breakdown


# ============================================================================
# Content Routes
# ============================================================================


@router.get("/content", response_model=ContentResponse)
async def get_content(
    settings: SettingsDep,
    store: StoreDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[Optional[int], Query(ge=1)] = None,
    type: Optional[ContentKind] = None,
    source: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
):
    """
    Paginated content, newest first.

    Without a configured database, or when the query fails, the response is
    an empty page so the frontend always has something to render.
    """
    limit = min(limit or settings.default_page_size, settings.max_page_size)

    date_range = None
    if start_date and end_date:
        date_range = DateRange(start=start_date, end=end_date)

    filters = ContentFilters(
        content_kind=type,
        source_name=source or None,
        date_range=date_range,
        search_query=search or None,
    )

    def empty(page_no: int) -> ContentResponse:
        return ContentResponse(
            content=[],
            pagination=Pagination(page=page_no, limit=limit, total=0, total_pages=0),
            filters=filters,
        )

    if not store.is_configured:
        logger.info("Content API request processed (no database)")
        return empty(page)

    try:
        result = await store.get_content(filters, page=page, limit=limit)
    except RedzoneError as e:
        logger.error("Content API error", error=str(e))
        return empty(1)

    logger.info("Content API request processed", page=page, limit=limit, total=result.total)

    return ContentResponse(
        content=result.content,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=result.total,
            total_pages=math.ceil(result.total / limit),
        ),
        filters=filters,
    )


# ============================================================================
# Source Routes
# ============================================================================


@router.get("/sources", response_model=SourcesResponse, response_model_exclude_none=True)
async def list_sources(
    registry: RegistryDep,
    orchestrator: OrchestratorDep,
    store: StoreDep,
    stats: bool = False,
):
    """Configured sources, optionally with stored item counts per source."""
    loaded = {m.source_id for m in orchestrator.get_module_status() if m.enabled}
    configured = registry.list_enabled()

    response = SourcesResponse(
        sources=[
            SourceListing(
                id=s.id,
                name=s.name,
                type=s.content_kind,
                enabled=s.enabled,
                module_loaded=s.id in loaded,
            )
            for s in configured
        ]
    )

    if stats and store.is_configured:
        try:
            counts = await store.count_by_source()
            response.stats = SourceStats(
                total_sources=len(counts),
                source_stats=[SourceCount(source_name=n, count=c) for n, c in counts.items()],
            )
        except RedzoneError as e:
            logger.warning("Could not fetch source stats from database", error=str(e))

    logger.info("Sources API request processed", include_stats=stats, source_count=len(configured))
    return response


# ============================================================================
# Manual Ingestion Routes
# ============================================================================


@router.get("/ingest")
async def ingestion_status(orchestrator: OrchestratorDep):
    """Module status for monitoring."""
    modules: list[ModuleStatus] = orchestrator.get_module_status()
    return {
        "status": "ready",
        "modules": [m.model_dump(by_alias=True, mode="json") for m in modules],
        "message": "Ingestion system is ready. Use POST to trigger ingestion.",
    }


@router.post("/ingest")
async def trigger_ingestion(
    orchestrator: OrchestratorDep,
    body: Annotated[Optional[IngestRequest], Body()] = None,
):
    """Run ingestion for one source (`sourceId`) or for all of them."""
    source_id = body.source_id if body else None
    logger.info("Manual ingestion triggered via API", source_id=source_id)
    start = time.monotonic()

    try:
        if source_id:
            outcomes = [await orchestrator.ingest_source(source_id)]
        else:
            outcomes = await orchestrator.ingest_all()
    except SourceNotFoundError as e:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "Source not found", "message": str(e)},
        )
    except RedzoneError as e:
        logger.error("Ingestion API error", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Ingestion failed", "message": str(e)},
        )

    summary = RunSummary.from_outcomes(outcomes, time.monotonic() - start)
    logger.info("Manual ingestion completed via API", **summary.to_dict())

    return {
        "success": True,
        "message": (
            f"Ingestion completed for source: {source_id}"
            if source_id
            else "Ingestion completed for all sources"
        ),
        "results": [o.to_dict() for o in outcomes],
        "summary": summary.to_dict(),
        "sourceBreakdown": _breakdown(outcomes),
    }


# ============================================================================
# Scheduled Ingestion Routes
# ============================================================================


def _check_cron_auth(request: Request, settings: Settings) -> Optional[JSONResponse]:
    """None when authorized, otherwise the error response to send."""
    if not settings.cron_secret:
        logger.error("CRON_SECRET environment variable not set")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Server configuration error"},
        )

    provided = request.headers.get("authorization", "")
    expected = f"Bearer {settings.cron_secret}"
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning(
            "Unauthorized cron request attempt",
            ip=request.client.host if request.client else "unknown",
            user_agent=request.headers.get("user-agent"),
            auth_provided=bool(provided),
        )
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    return None


@router.api_route("/cron/ingest", methods=["GET", "POST"])
async def scheduled_ingestion(
    request: Request,
    settings: SettingsDep,
    orchestrator: OrchestratorDep,
):
    """
    Scheduled ingestion endpoint, called by an external cron.

    Requires `Authorization: Bearer <CRON_SECRET>`.
    """
    denied = _check_cron_auth(request, settings)
    if denied is not None:
        return denied

    start = time.monotonic()
    logger.info("Scheduled ingestion started", trigger="cron-endpoint", schedule=settings.schedule_cron)

    try:
        outcomes = await orchestrator.ingest_all()
    except RedzoneError as e:
        logger.error("Scheduled ingestion failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Scheduled ingestion failed",
                "message": str(e),
                "timestamp": _now_iso(),
            },
        )

    summary = RunSummary.from_outcomes(outcomes, time.monotonic() - start)
    breakdown = _breakdown(outcomes)
    next_run = next_run_time(settings.schedule_cron)

    logger.info("Scheduled ingestion completed", **summary.to_dict(), source_breakdown=breakdown)

    failures = [o for o in outcomes if not o.success]
    if failures:
        logger.warning(
            "Some sources failed during scheduled ingestion",
            failures=[{"sourceId": f.source_id, "errors": f.errors} for f in failures],
        )

    return {
        "success": True,
        "message": (
            f"Scheduled ingestion completed: {summary.total_saved} items saved from "
            f"{summary.successful}/{summary.total_sources} sources"
        ),
        "summary": summary.to_dict(),
        "sourceBreakdown": breakdown,
        "results": [o.to_dict() for o in outcomes],
        "timestamp": _now_iso(),
        "nextScheduledRun": next_run.isoformat() if next_run else None,
        "schedule": settings.schedule_cron,
    }


@router.get("/cron/status")
async def cron_status(request: Request, settings: SettingsDep):
    """Schedule information and recent ingestion log events."""
    scheduler = getattr(request.app.state, "scheduler", None)
    next_run = next_run_time(settings.schedule_cron)

    return {
        "status": "active",
        "schedule": f"{settings.schedule_cron} (UTC)",
        "cronExpression": settings.schedule_cron,
        "schedulerRunning": bool(scheduler and scheduler.is_running),
        "lastRun": scheduler.get_status()["lastRun"] if scheduler else None,
        "nextRun": next_run.isoformat() if next_run else None,
        "recentLogs": read_recent_log_events(settings.log_file),
        "timestamp": _now_iso(),
    }
