"""
Ingestion Orchestrator - Runs every configured source.

Owns one ingestion module per enabled source, runs them independently
and collects their outcomes. A failing source never stops the others.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from redzone.config import Settings, get_settings
from redzone.core.exceptions import ConfigurationError, SourceNotFoundError
from redzone.core.sources import SourceRegistry
from redzone.models.domain import ContentKind, ModuleStatus, SourceDescriptor
from redzone.services.ingestion.base import IngestionModule, IngestionOutcome
from redzone.services.ingestion.feed import FeedIngestionModule
from redzone.services.ingestion.video import VideoIngestionModule
from redzone.storage.content_store import ContentStore

logger = structlog.get_logger(__name__)

MODULE_TYPES: dict[ContentKind, type[IngestionModule]] = {
    # Articles and podcasts are both syndicated as feeds
    ContentKind.ARTICLE: FeedIngestionModule,
    ContentKind.PODCAST: FeedIngestionModule,
    ContentKind.VIDEO: VideoIngestionModule,
}


@dataclass
class RunSummary:
    """Aggregate counts over one run's outcomes."""
    total_sources: int
    successful: int
    failed: int
    total_processed: int
    total_saved: int
    duration_ms: int

    @classmethod
    def from_outcomes(cls, outcomes: list[IngestionOutcome], duration_seconds: float) -> "RunSummary":
        successful = sum(1 for o in outcomes if o.success)
        return cls(
            total_sources=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful,
            total_processed=sum(o.items_processed for o in outcomes),
            total_saved=sum(o.items_saved for o in outcomes),
            duration_ms=int(duration_seconds * 1000),
        )

    def to_dict(self) -> dict:
        return {
            "totalSources": self.total_sources,
            "successful": self.successful,
            "failed": self.failed,
            "totalProcessed": self.total_processed,
            "totalSaved": self.total_saved,
            "duration": self.duration_ms,
            "durationMinutes": round(self.duration_ms / 1000 / 60, 2),
        }


class IngestionOrchestrator:
    """
    Builds and runs ingestion modules.

    Features:
    - One module per enabled source, chosen by content kind
    - Sources whose module cannot be built are skipped, not fatal
    - Concurrent runs bounded by max_concurrent_sources
    - Outcomes reported in registration order
    """

    def __init__(
        self,
        registry: SourceRegistry,
        store: ContentStore,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.registry = registry
        self.store = store
        self.settings = settings or get_settings()
        self._client = client
        self.modules: dict[str, IngestionModule] = {}
        self._initialize_modules()

    def _initialize_modules(self) -> None:
        self.modules = {}

        for source in self.registry.list_enabled():
            try:
                self.modules[source.id] = self._create_module(source)
                logger.info(
                    "Initialized ingestion module",
                    source_id=source.id,
                    source_name=source.name,
                    kind=source.content_kind.value,
                )
            except Exception as e:
                logger.error(
                    "Failed to initialize module for source",
                    source_id=source.id,
                    source_name=source.name,
                    error=str(e),
                )

        logger.info("Initialized ingestion modules", count=len(self.modules))

    def _create_module(self, source: SourceDescriptor) -> IngestionModule:
        module_type = MODULE_TYPES.get(source.content_kind)
        if module_type is None:
            raise ConfigurationError(f"Unsupported source type: {source.content_kind}")
        return module_type(source, self.store, settings=self.settings, client=self._client)

    async def ingest_all(self) -> list[IngestionOutcome]:
        """
        Run ingestion for all registered modules.

        Raises ConfigurationError when no database is configured; every
        other failure is reported inside the outcomes.
        """
        logger.info("Starting full ingestion process", sources=len(self.modules))
        start = time.monotonic()

        await self._prepare_store()

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_sources)

        async def run(module: IngestionModule) -> IngestionOutcome:
            async with semaphore:
                return await module.ingest()

        modules = list(self.modules.values())
        results = await asyncio.gather(*(run(m) for m in modules), return_exceptions=True)

        outcomes = []
        for module, result in zip(modules, results):
            if isinstance(result, BaseException):
                # ingest() reports its own failures; this only catches bugs
                logger.error("Ingestion failed for source", source_id=module.source_id, error=str(result))
                outcomes.append(IngestionOutcome(
                    source_id=module.source_id,
                    success=False,
                    errors=[str(result) or result.__class__.__name__],
                ))
            else:
                outcomes.append(result)

        summary = RunSummary.from_outcomes(outcomes, time.monotonic() - start)
        logger.info("Ingestion process completed", **summary.to_dict())

        return outcomes

    async def ingest_source(self, source_id: str) -> IngestionOutcome:
        """Run ingestion for one source. Raises SourceNotFoundError if it has no module."""
        module = self.modules.get(source_id)
        if module is None:
            raise SourceNotFoundError(source_id)

        logger.info("Starting ingestion for specific source", source_id=source_id)
        await self._prepare_store()

        outcome = await module.ingest()

        logger.info(
            "Ingestion completed for specific source",
            source_id=source_id,
            success=outcome.success,
            items_processed=outcome.items_processed,
            items_saved=outcome.items_saved,
        )
        return outcome

    def get_module_status(self) -> list[ModuleStatus]:
        """Every enabled source, flagged by whether a live module exists for it."""
        return [
            ModuleStatus(
                source_id=source.id,
                enabled=source.id in self.modules,
                kind=source.content_kind,
                name=source.name,
            )
            for source in self.registry.list_enabled()
        ]

    def reload_modules(self) -> None:
        """Rebuild all modules from the current registry state."""
        logger.info("Reloading ingestion modules")
        self.registry.reload()
        self._initialize_modules()

    async def _prepare_store(self) -> None:
        if not self.store.is_configured:
            raise ConfigurationError("Missing required environment variables: DATABASE_URL")
        await self.store.create_indexes()
