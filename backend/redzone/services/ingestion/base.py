"""
Base classes and data models for content ingestion.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Generic, Optional, Protocol, TypeVar, Union

import httpx
import structlog

from redzone.config import Settings, get_settings
from redzone.core.exceptions import ItemValidationError, SourceError
from redzone.models.domain import CanonicalContentRecord, SourceDescriptor
from redzone.services.ingestion.normalizer import to_iso, utcnow, validate_record

logger = structlog.get_logger(__name__)

RawItem = TypeVar("RawItem")
TransformResult = Union[CanonicalContentRecord, ItemValidationError]


class IngestionState(str, Enum):
    """Lifecycle of a single ingest() call."""
    NOT_STARTED = "not_started"
    VALIDATING = "validating"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    VALIDATED = "validated"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ContentSink(Protocol):
    """Where validated records go. Implemented by ContentStore."""

    async def save_content(self, records: list[CanonicalContentRecord]) -> int:
        ...


@dataclass
class IngestionOutcome:
    """Result of one ingestion run for one source."""
    source_id: str
    success: bool
    items_processed: int = 0
    items_saved: int = 0
    items_dropped: int = 0
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "success": self.success,
            "itemsProcessed": self.items_processed,
            "itemsSaved": self.items_saved,
            "itemsDropped": self.items_dropped,
            "errors": list(self.errors),
            "timestamp": to_iso(self.timestamp),
        }

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return (
            f"{status} {self.source_id}: "
            f"processed={self.items_processed}, saved={self.items_saved}, "
            f"dropped={self.items_dropped}, errors={len(self.errors)}, "
            f"time={self.duration_seconds:.1f}s"
        )


class IngestionModule(ABC, Generic[RawItem]):
    """
    Abstract base class for ingestion modules.

    Each module handles:
    - Fetching raw items from its remote endpoint
    - Transforming them into canonical records

    The shared ingest() drives validation, persistence and outcome
    reporting. It never raises; every failure ends up in the outcome.
    """

    def __init__(
        self,
        descriptor: SourceDescriptor,
        store: ContentSink,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.descriptor = descriptor
        self.store = store
        self.settings = settings or get_settings()
        self._client = client
        self._state = IngestionState.NOT_STARTED
        self._run_lock = asyncio.Lock()

    @property
    def source_id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def state(self) -> IngestionState:
        """State of the current or most recent run."""
        return self._state

    @abstractmethod
    async def fetch_raw(self, client: httpx.AsyncClient) -> list[RawItem]:
        """
        Fetch raw items from the remote endpoint.

        Transport and payload problems must be raised as SourceError.
        """

    @abstractmethod
    def transform(self, raw: RawItem) -> TransformResult:
        """Turn one raw item into a record, or explain why it was dropped."""

    def validate_config(self) -> None:
        """Check the descriptor before any network traffic."""
        if not self.descriptor.enabled:
            raise SourceError("Source is disabled", self.source_id)

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Injected client if one was given, else a short-lived one."""
        if self._client is not None:
            yield self._client
            return

        async with httpx.AsyncClient(
            timeout=self.settings.fetch_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": self.settings.user_agent},
        ) as client:
            yield client

    async def ingest(self) -> IngestionOutcome:
        """
        Run the full fetch, transform, validate, persist cycle.

        Overlapping calls on one module (the scheduler and the cron endpoint
        share modules) run one after the other.
        """
        async with self._run_lock:
            return await self._ingest()

    async def _ingest(self) -> IngestionOutcome:
        start = time.monotonic()
        items_processed = 0
        dropped = 0
        self._set_state(IngestionState.NOT_STARTED)
        logger.info("Starting ingestion for source", source_id=self.source_id, source_name=self.name)

        try:
            self._set_state(IngestionState.VALIDATING)
            self.validate_config()

            self._set_state(IngestionState.FETCHING)
            async with self.http_client() as client:
                raw_items = await self.fetch_raw(client)
            items_processed = len(raw_items)

            self._set_state(IngestionState.TRANSFORMING)
            records, dropped = self._transform_all(raw_items)

            valid = self._validate_batch(records)
            dropped += len(records) - len(valid)
            self._set_state(IngestionState.VALIDATED)

            self._set_state(IngestionState.PERSISTING)
            saved = await self.store.save_content(valid) if valid else 0

        except Exception as e:
            self._set_state(IngestionState.FAILED)
            message = str(e) or e.__class__.__name__
            logger.error(
                "Ingestion failed for source",
                source_id=self.source_id,
                source_name=self.name,
                error=message,
                exc_info=not isinstance(e, SourceError),
            )
            return IngestionOutcome(
                source_id=self.source_id,
                success=False,
                items_processed=items_processed,
                items_dropped=dropped,
                errors=[message],
                duration_seconds=time.monotonic() - start,
            )

        self._set_state(IngestionState.SUCCEEDED)
        outcome = IngestionOutcome(
            source_id=self.source_id,
            success=True,
            items_processed=items_processed,
            items_saved=saved,
            items_dropped=dropped,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(
            "Ingestion completed for source",
            source_id=self.source_id,
            source_name=self.name,
            items_processed=outcome.items_processed,
            items_saved=outcome.items_saved,
            items_dropped=outcome.items_dropped,
            duration_seconds=round(outcome.duration_seconds, 3),
        )
        return outcome

    def _transform_all(self, raw_items: list[RawItem]) -> tuple[list[CanonicalContentRecord], int]:
        records = []
        dropped = 0

        for raw in raw_items:
            try:
                result = self.transform(raw)
            except Exception as e:
                result = ItemValidationError(f"Failed to transform item: {e}")

            if isinstance(result, ItemValidationError):
                dropped += 1
                logger.warning(
                    "Dropped item",
                    source_id=self.source_id,
                    reason=str(result),
                )
                continue
            records.append(result)

        return records, dropped

    def _validate_batch(self, records: list[CanonicalContentRecord]) -> list[CanonicalContentRecord]:
        valid = []
        failures = []

        for record in records:
            result = validate_record(record, self.descriptor)
            if isinstance(result, ItemValidationError):
                failures.append(str(result))
                continue
            valid.append(result)

        if failures:
            logger.warning(
                "Items failed validation",
                source_id=self.source_id,
                count=len(failures),
                errors=failures,
            )

        return valid

    def _set_state(self, state: IngestionState) -> None:
        self._state = state
        logger.debug("Ingestion state", source_id=self.source_id, state=state.value)
