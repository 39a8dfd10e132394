"""
Tests for the content store, against a temporary SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql

from redzone.core.exceptions import ConfigurationError
from redzone.models.database import Database
from redzone.models.domain import CanonicalContentRecord, ContentFilters, ContentKind, DateRange
from redzone.services.ingestion.normalizer import to_iso
from redzone.storage.content_store import ContentStore, search_condition

BASE_TIME = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


def make_record(
    n: int,
    kind: ContentKind = ContentKind.ARTICLE,
    source: str = "ESPN Fantasy Football",
    title: str | None = None,
    description: str | None = None,
    hours_ago: int | None = None,
) -> CanonicalContentRecord:
    published = BASE_TIME - timedelta(hours=n if hours_ago is None else hours_ago)
    return CanonicalContentRecord(
        id=f"src-{n}",
        title=title or f"Story {n}",
        description=description or f"Description {n}",
        source_name=source,
        content_kind=kind,
        published_at=to_iso(published),
        url=f"https://example.com/story-{n}",
        ingestion_source="src",
    )


class TestUpsert:
    """Tests for idempotent saves."""

    async def test_save_and_read_back(self, store):
        saved = await store.save_content([make_record(1), make_record(2)])

        assert saved == 2
        document = await store.get_by_url("https://example.com/story-1")
        assert document.title == "Story 1"
        assert document.published_at == "2024-09-01T11:00:00.000Z"
        assert document.content_kind == ContentKind.ARTICLE

    async def test_same_url_twice_keeps_one_document(self, store, clock):
        await store.save_content([make_record(1)])
        first = await store.get_by_url("https://example.com/story-1")

        clock.advance(hours=2)
        saved = await store.save_content([make_record(1, title="Story 1 (updated)")])
        second = await store.get_by_url("https://example.com/story-1")

        assert saved == 1
        assert (await store.get_content()).total == 1
        assert second.title == "Story 1 (updated)"
        assert second.created_at == first.created_at
        assert second.updated_at == first.updated_at + timedelta(hours=2)

    async def test_unchanged_resave_counts(self, store):
        await store.save_content([make_record(1)])
        assert await store.save_content([make_record(1)]) == 1

    async def test_empty_batch(self, store):
        assert await store.save_content([]) == 0

    async def test_create_indexes_is_repeatable(self, store):
        await store.create_indexes()
        await store.create_indexes()


class TestQueries:
    """Tests for filtered, paginated reads."""

    async def test_pagination(self, store):
        await store.save_content([make_record(i) for i in range(45)])

        page = await store.get_content(page=1, limit=20)
        last = await store.get_content(page=3, limit=20)

        assert page.total == 45
        assert len(page.content) == 20
        assert len(last.content) == 5
        assert page.content[0].url == "https://example.com/story-0"

    async def test_newest_first(self, store):
        await store.save_content([make_record(3), make_record(1), make_record(2)])

        page = await store.get_content()

        assert [d.id for d in page.content] == ["src-1", "src-2", "src-3"]

    async def test_filter_by_kind_and_source(self, store):
        await store.save_content([
            make_record(1, kind=ContentKind.ARTICLE, source="ESPN"),
            make_record(2, kind=ContentKind.VIDEO, source="NFL Official"),
            make_record(3, kind=ContentKind.VIDEO, source="Fantasy Footballers"),
        ])

        videos = await store.get_content(ContentFilters(content_kind=ContentKind.VIDEO))
        nfl = await store.get_content(ContentFilters(source_name="NFL Official"))

        assert videos.total == 2
        assert {d.content_kind for d in videos.content} == {ContentKind.VIDEO}
        assert [d.id for d in nfl.content] == ["src-2"]

    async def test_filter_by_date_range(self, store):
        await store.save_content([make_record(i, hours_ago=i * 24) for i in range(5)])

        filters = ContentFilters(date_range=DateRange(
            start=BASE_TIME - timedelta(days=2, hours=1),
            end=BASE_TIME - timedelta(hours=1),
        ))
        page = await store.get_content(filters)

        assert sorted(d.id for d in page.content) == ["src-1", "src-2"]

    async def test_search(self, store):
        await store.save_content([
            make_record(1, title="Waiver wire targets"),
            make_record(2, description="Sleepers for the waiver wire"),
            make_record(3, title="Trade value chart"),
        ])

        page = await store.get_content(ContentFilters(search_query="waiver"))

        assert sorted(d.id for d in page.content) == ["src-1", "src-2"]

    async def test_search_treats_wildcards_literally(self, store):
        await store.save_content([
            make_record(1, title="100% bust"),
            make_record(2, title="1000 yards"),
            make_record(3, title="a_b"),
            make_record(4, title="axb"),
        ])

        percent = await store.get_content(ContentFilters(search_query="100%"))
        underscore = await store.get_content(ContentFilters(search_query="a_b"))

        assert [d.title for d in percent.content] == ["100% bust"]
        assert [d.title for d in underscore.content] == ["a_b"]

    def test_postgres_search_matches_text_index(self):
        sql = str(search_condition("waiver", "postgresql").compile(dialect=postgresql.dialect()))

        assert "to_tsvector('english', " in sql
        assert "content.title || ' ' || coalesce(content.description, '')" in sql
        assert "@@ plainto_tsquery" in sql


class TestAggregates:
    """Tests for source listings and maintenance."""

    async def test_source_names_and_counts(self, store):
        await store.save_content([
            make_record(1, source="FantasyPros"),
            make_record(2, source="ESPN"),
            make_record(3, source="FantasyPros"),
        ])

        assert await store.get_source_names() == ["ESPN", "FantasyPros"]
        assert await store.count_by_source() == {"ESPN": 1, "FantasyPros": 2}

    async def test_wipe(self, store):
        await store.save_content([make_record(i) for i in range(3)])

        assert await store.wipe() == 3
        assert (await store.get_content()).total == 0


class TestUnconfigured:
    """Tests for a store without a database URL."""

    async def test_not_configured(self):
        store = ContentStore(Database(None))

        assert store.is_configured is False
        with pytest.raises(ConfigurationError, match="DATABASE_URL"):
            await store.get_content()
