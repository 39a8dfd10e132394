"""
Ingestion Scheduler - Automated ingestion on a cron schedule.

Runs the orchestrator's full ingestion on the configured crontab
expression (UTC). Each run either completes or fails; a failed run is
retried only by the next scheduled trigger.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from redzone.core.exceptions import ConfigurationError, RedzoneError
from redzone.services.ingestion.base import IngestionOutcome
from redzone.services.ingestion.orchestrator import IngestionOrchestrator, RunSummary

logger = structlog.get_logger(__name__)

JOB_ID = "scheduled_ingestion"


def build_trigger(cron_expression: str) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
    except ValueError as e:
        raise ConfigurationError(f"Invalid schedule expression {cron_expression!r}: {e}") from e


def next_run_time(cron_expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """When the schedule fires next after `now`."""
    now = now or datetime.now(timezone.utc)
    return build_trigger(cron_expression).get_next_fire_time(None, now)


class IngestionScheduler:
    """
    Schedules and runs periodic ingestion.

    Features:
    - Crontab schedule (UTC)
    - One run at a time; overlapping triggers are skipped
    - Last run summary kept for status reporting
    """

    def __init__(self, orchestrator: IngestionOrchestrator, cron_expression: str):
        self.orchestrator = orchestrator
        self.cron_expression = cron_expression
        self.trigger = build_trigger(cron_expression)

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._last_run: Optional[datetime] = None
        self._last_summary: Optional[RunSummary] = None

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self.run_once,
            self.trigger,
            id=JOB_ID,
            name="Scheduled Content Ingestion",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Scheduler started", schedule=self.cron_expression, next_run=self._iso(self.next_run_time()))

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Ingestion scheduler stopped")

    async def run_once(self) -> list[IngestionOutcome]:
        """Execute one scheduled ingestion; failures are logged, not raised."""
        started = datetime.now(timezone.utc)
        logger.info("Scheduled ingestion started", trigger="cron", schedule=self.cron_expression)

        try:
            outcomes = await self.orchestrator.ingest_all()
        except RedzoneError as e:
            logger.error("Scheduled ingestion failed", error=str(e))
            return []

        self._last_run = started
        self._last_summary = RunSummary.from_outcomes(
            outcomes, (datetime.now(timezone.utc) - started).total_seconds()
        )
        logger.info("Scheduled ingestion completed", **self._last_summary.to_dict())

        for outcome in outcomes:
            if not outcome.success:
                logger.warning(
                    "Source failed during scheduled ingestion",
                    source_id=outcome.source_id,
                    errors=outcome.errors,
                )

        return outcomes

    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is not None:
            job = self._scheduler.get_job(JOB_ID)
            if job is not None and job.next_run_time is not None:
                return job.next_run_time
        return next_run_time(self.cron_expression)

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def get_status(self) -> dict:
        """Get scheduler status."""
        return {
            "running": self.is_running,
            "cronExpression": self.cron_expression,
            "lastRun": self._iso(self._last_run),
            "nextRun": self._iso(self.next_run_time()),
            "lastSummary": self._last_summary.to_dict() if self._last_summary else None,
        }

    @staticmethod
    def _iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None
