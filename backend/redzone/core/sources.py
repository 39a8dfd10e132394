"""
Content source registry.

Defines the sources the application ingests from. The built-in list can be
replaced by a JSON file (a list of source objects, camelCase or snake_case
keys) so sources can be changed without a code release.
"""

import json
from pathlib import Path
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from redzone.config import Settings
from redzone.core.exceptions import ConfigurationError
from redzone.models.domain import ContentKind, SourceDescriptor

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 120  # minutes

DEFAULT_SOURCES: list[SourceDescriptor] = [
    # RSS feeds
    SourceDescriptor(
        id="espn-fantasy-football",
        name="ESPN Fantasy Football",
        content_kind=ContentKind.ARTICLE,
        endpoint="https://www.espn.com/espn/rss/fantasy/football/news",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
    ),
    SourceDescriptor(
        id="fantasysp-rss",
        name="FantasySP",
        content_kind=ContentKind.ARTICLE,
        endpoint="https://www.fantasysp.com/rss",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
    ),
    SourceDescriptor(
        id="fantasypros-rss",
        name="FantasyPros",
        content_kind=ContentKind.ARTICLE,
        endpoint="https://www.fantasypros.com/rss/news.xml",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
    ),

    # YouTube channels
    SourceDescriptor(
        id="fantasy-footballers-youtube",
        name="The Fantasy Footballers",
        content_kind=ContentKind.VIDEO,
        endpoint="https://www.youtube.com/@thefantasyfootballers",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
        parameters={"channel_id": "UCbcZGBgLhWJKNOqCu5Z8XFw", "max_results": 10},
    ),
    SourceDescriptor(
        id="fantasy-football-today-youtube",
        name="Fantasy Football Today",
        content_kind=ContentKind.VIDEO,
        endpoint="https://www.youtube.com/@FantasyFootballToday",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
        parameters={"channel_id": "UCKFNs_14Ty1ClxyDYS_E5Gg", "max_results": 10},
    ),
    SourceDescriptor(
        id="nfl-official-youtube",
        name="NFL Official",
        content_kind=ContentKind.VIDEO,
        endpoint="https://www.youtube.com/@NFL",
        poll_interval_minutes=DEFAULT_POLL_INTERVAL,
        parameters={"channel_id": "UCDVYQ4Zhbm3S2dlz7P1GBDg", "max_results": 10},
    ),
]

_source_list = TypeAdapter(list[SourceDescriptor])


def load_sources_file(path: str) -> list[SourceDescriptor]:
    """Read and validate a JSON source list."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        sources = _source_list.validate_python(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid sources file {path}: {e}") from e

    ids = [s.id for s in sources]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate source ids in {path}: {', '.join(duplicates)}")

    return sources


class SourceRegistry:
    """
    Read-only lookups over the configured sources.

    Lookups never raise; a missing source is reported as None.
    """

    def __init__(
        self,
        sources: Optional[list[SourceDescriptor]] = None,
        path: Optional[str] = None,
    ):
        self.path = path
        if path:
            self._sources = load_sources_file(path)
        else:
            self._sources = list(sources if sources is not None else DEFAULT_SOURCES)

    def all(self) -> list[SourceDescriptor]:
        return list(self._sources)

    def list_enabled(self) -> list[SourceDescriptor]:
        """Get all enabled sources."""
        return [s for s in self._sources if s.enabled]

    def list_by_kind(self, kind: ContentKind) -> list[SourceDescriptor]:
        """Get enabled sources of one content kind."""
        kind = ContentKind(kind)
        return [s for s in self._sources if s.enabled and s.content_kind == kind]

    def find_by_id(self, source_id: str) -> Optional[SourceDescriptor]:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def reload(self) -> None:
        """Re-read the sources file; a registry built from a list is left as is."""
        if not self.path:
            return
        self._sources = load_sources_file(self.path)
        logger.info("Reloaded source registry", path=self.path, sources=len(self._sources))

    def __len__(self) -> int:
        return len(self._sources)


def build_registry(settings: Settings) -> SourceRegistry:
    """Build the registry the settings point at."""
    return SourceRegistry(path=settings.sources_file)
