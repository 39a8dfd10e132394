"""
Domain models for Redzone Fantasy.
These are the core business entities, independent of database/API representation.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class ContentKind(str, Enum):
    """Kind of content a source produces."""
    ARTICLE = "article"
    VIDEO = "video"
    PODCAST = "podcast"


# =============================================================================
# Base
# =============================================================================

class CamelModel(BaseModel):
    """Models exchanged with the frontend use camelCase field names on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Sources
# =============================================================================

class SourceDescriptor(CamelModel):
    """Static configuration for one content source."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    content_kind: ContentKind
    enabled: bool = True
    endpoint: str = ""
    poll_interval_minutes: int = Field(default=120, ge=1)
    parameters: dict[str, Any] = Field(default_factory=dict)

    @property
    def channel_id(self) -> Optional[str]:
        value = self.parameters.get("channel_id")
        return str(value) if value else None


# =============================================================================
# Content
# =============================================================================

class CanonicalContentRecord(CamelModel):
    """One piece of ingested content, normalized across source types."""

    id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    source_name: str
    content_kind: ContentKind = Field(alias="type")
    published_at: str  # ISO-8601, e.g. 2024-01-15T09:00:00.000Z
    url: str
    author: Optional[str] = None
    ingestion_source: str


class StoredContentDocument(CanonicalContentRecord):
    """A record as held by the content store."""

    created_at: datetime
    updated_at: datetime


class DateRange(CamelModel):
    start: datetime
    end: datetime


class ContentFilters(CamelModel):
    """Filters accepted by the content query."""

    content_kind: Optional[ContentKind] = Field(default=None, alias="type")
    source_name: Optional[str] = None
    date_range: Optional[DateRange] = None
    search_query: Optional[str] = None


# =============================================================================
# API Responses
# =============================================================================

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ContentResponse(CamelModel):
    content: list[StoredContentDocument]
    pagination: Pagination
    filters: ContentFilters


class ModuleStatus(CamelModel):
    source_id: str
    enabled: bool
    kind: ContentKind
    name: str


class SourceListing(CamelModel):
    id: str
    name: str
    type: ContentKind
    enabled: bool
    module_loaded: bool


class SourceCount(CamelModel):
    source_name: str
    count: int


class SourceStats(CamelModel):
    total_sources: int
    source_stats: list[SourceCount]


class SourcesResponse(CamelModel):
    sources: list[SourceListing]
    stats: Optional[SourceStats] = None
