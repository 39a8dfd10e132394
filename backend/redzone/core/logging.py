"""
Structured logging setup.

Every event is rendered as one JSON line, to stderr and (when configured)
to a rotating log file that the cron status endpoint reads back.
"""

import json
import logging
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog

from redzone.config import Settings

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def configure_logging(settings: Settings) -> None:
    """Configure stdlib handlers and structlog processors."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def read_recent_log_events(
    log_file: Optional[str],
    keywords: tuple[str, ...] = ("ingestion", "cron"),
    scan_lines: int = 100,
    limit: int = 10,
) -> list[dict]:
    """
    Return the last matching JSON events from the log file.

    Best effort: a missing file or unparseable lines yield fewer results,
    never an error.
    """
    if not log_file:
        return []

    path = Path(log_file)
    try:
        with path.open(encoding="utf-8") as f:
            tail = deque(f, maxlen=scan_lines)
    except OSError:
        return []

    events = []
    for line in tail:
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(event, dict):
            continue
        message = str(event.get("event", "")).lower()
        if any(k in message for k in keywords):
            events.append(event)

    return events[-limit:]
