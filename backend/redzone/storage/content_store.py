"""
Content store: idempotent persistence and querying of canonical records.
"""

from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

import structlog
from sqlalchemy import String, delete, func, literal_column, or_, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from redzone.core.exceptions import PersistenceError
from redzone.models.database import Database, DBContent
from redzone.models.domain import (
    CanonicalContentRecord,
    ContentFilters,
    ContentKind,
    StoredContentDocument,
)
from redzone.services.ingestion.normalizer import parse_date, to_iso

logger = structlog.get_logger(__name__)

# PostgreSQL only. Other dialects search with an unindexed substring match.
TEXT_INDEX_DDL = {
    "postgresql": (
        "CREATE INDEX IF NOT EXISTS ix_content_text ON content USING gin "
        "(to_tsvector('english', title || ' ' || coalesce(description, '')))"
    ),
}

# Fields overwritten on every upsert; created_at is deliberately absent.
UPSERT_FIELDS = (
    "content_id",
    "title",
    "description",
    "thumbnail_url",
    "author",
    "source_name",
    "content_kind",
    "ingestion_source",
    "published_at",
)


def _utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def search_condition(query: str, dialect: str):
    """
    Free-text match over title and description.

    On PostgreSQL the expression mirrors ix_content_text exactly so the
    planner can use the GIN index. Elsewhere it is a case-insensitive
    substring match with LIKE wildcards in the query escaped.
    """
    if dialect == "postgresql":
        document = func.to_tsvector(
            literal_column("'english'"),
            DBContent.title
            + literal_column("' '", String)
            + func.coalesce(DBContent.description, literal_column("''", String)),
        )
        return document.op("@@")(func.plainto_tsquery("english", query))

    return or_(
        DBContent.title.icontains(query, autoescape=True),
        DBContent.description.icontains(query, autoescape=True),
    )


class ContentPage(NamedTuple):
    content: list[StoredContentDocument]
    total: int


class ContentStore:
    """
    Persistence layer for content documents.

    Writes are upserts keyed on the canonical URL, so ingesting the same
    item any number of times leaves exactly one document reflecting the
    latest fetch.
    """

    def __init__(self, database: Database, clock: Callable[[], datetime] = _utcnow_naive):
        self.database = database
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return self.database.is_configured

    async def create_indexes(self) -> None:
        """Create the content table, its indexes and the text search index."""
        try:
            await self.database.create_tables()
            ddl = TEXT_INDEX_DDL.get(self.database.dialect)
            if ddl:
                async with self.database.engine.begin() as conn:
                    await conn.execute(text(ddl))
        except SQLAlchemyError as e:
            logger.error("Error creating database indexes", error=str(e))
            raise PersistenceError(f"Failed to create indexes: {e}") from e

        logger.info("Database indexes created successfully")

    async def save_content(self, records: list[CanonicalContentRecord]) -> int:
        """
        Upsert records by URL.

        Returns the number of documents inserted or updated. Updates are
        unconditional, so an unchanged document still counts.
        """
        if not records:
            return 0

        insert = self._insert_for_dialect()
        now = self._clock()
        saved = 0

        try:
            async with self.database.async_session() as session:
                for record in records:
                    values = self._to_row(record)
                    stmt = insert(DBContent).values(**values, created_at=now, updated_at=now)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[DBContent.url],
                        set_={
                            **{name: getattr(stmt.excluded, name) for name in UPSERT_FIELDS},
                            "updated_at": now,
                        },
                    )
                    await session.execute(stmt)
                    saved += 1
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Error saving content to database", error=str(e), count=len(records))
            raise PersistenceError(f"Failed to save content: {e}") from e

        logger.info("Saved content items to database", count=saved)
        return saved

    async def get_content(
        self,
        filters: Optional[ContentFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> ContentPage:
        """Filtered page of content, newest first, plus the full filtered count."""
        filters = filters or ContentFilters()
        page = max(page, 1)
        limit = max(limit, 1)
        conditions = self._conditions(filters)

        query = (
            select(DBContent)
            .where(*conditions)
            .order_by(DBContent.published_at.desc(), DBContent.pk.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count(DBContent.pk)).where(*conditions)

        try:
            async with self.database.async_session() as session:
                rows = (await session.execute(query)).scalars().all()
                total = (await session.execute(count_query)).scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Error fetching content from database", error=str(e))
            raise PersistenceError(f"Failed to fetch content: {e}") from e

        return ContentPage(content=[self._to_document(r) for r in rows], total=total)

    async def get_by_url(self, url: str) -> Optional[StoredContentDocument]:
        try:
            async with self.database.async_session() as session:
                row = (
                    await session.execute(select(DBContent).where(DBContent.url == url))
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch content: {e}") from e
        return self._to_document(row) if row else None

    async def get_source_names(self) -> list[str]:
        """Distinct source names present in the store, sorted."""
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBContent.source_name).distinct().order_by(DBContent.source_name)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error fetching source names", error=str(e))
            raise PersistenceError(f"Failed to fetch source names: {e}") from e

    async def count_by_source(self) -> dict[str, int]:
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBContent.source_name, func.count(DBContent.pk))
                    .group_by(DBContent.source_name)
                    .order_by(DBContent.source_name)
                )
                return {name: count for name, count in result.all()}
        except SQLAlchemyError as e:
            logger.error("Error counting content by source", error=str(e))
            raise PersistenceError(f"Failed to count content: {e}") from e

    async def wipe(self) -> int:
        """Delete every content document. Returns the number removed."""
        try:
            async with self.database.async_session() as session:
                result = await session.execute(delete(DBContent))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to wipe content: {e}") from e

        deleted = result.rowcount or 0
        logger.info("Content collection wiped", deleted=deleted)
        return deleted

    def _insert_for_dialect(self):
        dialect = self.database.dialect
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise PersistenceError(f"Unsupported database dialect for upserts: {dialect}")

    def _conditions(self, filters: ContentFilters) -> list:
        conditions = []

        if filters.content_kind:
            conditions.append(DBContent.content_kind == ContentKind(filters.content_kind).value)

        if filters.source_name:
            conditions.append(DBContent.source_name == filters.source_name)

        if filters.date_range:
            conditions.append(
                DBContent.published_at.between(
                    _naive_utc(filters.date_range.start),
                    _naive_utc(filters.date_range.end),
                )
            )

        if filters.search_query and filters.search_query.strip():
            conditions.append(search_condition(filters.search_query.strip(), self.database.dialect))

        return conditions

    @staticmethod
    def _to_row(record: CanonicalContentRecord) -> dict:
        published = parse_date(record.published_at)
        if published is None:
            raise PersistenceError(f"Unparseable publishedAt for {record.url}: {record.published_at}")

        return {
            "content_id": record.id,
            "url": record.url,
            "title": record.title,
            "description": record.description,
            "thumbnail_url": record.thumbnail_url,
            "author": record.author,
            "source_name": record.source_name,
            "content_kind": ContentKind(record.content_kind).value,
            "ingestion_source": record.ingestion_source,
            "published_at": _naive_utc(published),
        }

    @staticmethod
    def _to_document(row: DBContent) -> StoredContentDocument:
        return StoredContentDocument(
            id=row.content_id,
            title=row.title,
            description=row.description,
            thumbnail_url=row.thumbnail_url,
            source_name=row.source_name,
            content_kind=ContentKind(row.content_kind),
            published_at=to_iso(row.published_at),
            url=row.url,
            author=row.author,
            ingestion_source=row.ingestion_source,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
