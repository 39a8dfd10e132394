"""
Shared fixtures.

Network access is never needed: HTTP goes through httpx.MockTransport and
the database is a throwaway SQLite file per test.
"""

from datetime import datetime, timedelta
from typing import Callable

import httpx
import pytest

from redzone.config import Settings
from redzone.models.database import Database
from redzone.models.domain import ContentKind, SourceDescriptor
from redzone.storage.content_store import ContentStore


FEED_URL = "https://feeds.example.com/fantasy.xml"


def rss_document(items: list[str]) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">'
        "<channel><title>Fantasy News</title>"
        + "".join(items)
        + "</channel></rss>"
    )


def rss_item(
    title: str | None = "Waiver Wire Week 5",
    link: str | None = "https://example.com/waivers-week-5",
    pub_date: str | None = "Mon, 15 Jan 2024 09:00:00 GMT",
    description: str | None = "Top pickups for the week.",
) -> str:
    parts = ["<item>"]
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if link is not None:
        parts.append(f"<link>{link}</link>")
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if description is not None:
        parts.append(f"<description><![CDATA[{description}]]></description>")
    parts.append("</item>")
    return "".join(parts)


class FixedClock:
    """Clock for the content store that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 20, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'redzone.db'}",
        youtube_api_key="test-youtube-key",
        cron_secret="test-cron-secret",
        log_file=None,
        max_concurrent_sources=2,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
async def database(settings):
    db = Database(settings.database_url)
    yield db
    await db.close()


@pytest.fixture
async def store(database, clock) -> ContentStore:
    content_store = ContentStore(database, clock=clock)
    await content_store.create_indexes()
    return content_store


@pytest.fixture
def feed_source() -> SourceDescriptor:
    return SourceDescriptor(
        id="test-feed",
        name="Test Feed",
        content_kind=ContentKind.ARTICLE,
        endpoint=FEED_URL,
    )


@pytest.fixture
def video_source() -> SourceDescriptor:
    return SourceDescriptor(
        id="test-channel",
        name="Test Channel",
        content_kind=ContentKind.VIDEO,
        endpoint="https://www.youtube.com/@test",
        parameters={"channel_id": "UCtest", "max_results": 10},
    )


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by `handler`."""
    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
