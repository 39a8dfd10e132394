"""
Content ingestion for Redzone Fantasy.

This module provides the ingestion contract and its implementations:
- RSS/Atom feeds (articles, podcasts)
- YouTube channels (videos)
- Shared normalization and validation

The orchestrator lives in redzone.services.ingestion.orchestrator.
"""

from redzone.services.ingestion.base import (
    IngestionModule,
    IngestionOutcome,
    IngestionState,
)
from redzone.services.ingestion.feed import FeedIngestionModule
from redzone.services.ingestion.video import VideoIngestionModule

__all__ = [
    "IngestionModule",
    "IngestionOutcome",
    "IngestionState",
    "FeedIngestionModule",
    "VideoIngestionModule",
]
