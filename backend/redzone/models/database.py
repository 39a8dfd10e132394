"""
SQLAlchemy database models for Redzone Fantasy.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from redzone.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Content
# =============================================================================

class DBContent(Base):
    """
    Stored content document.

    `url` is the natural key: every write is an upsert on it. `content_id`
    is the informational id derived at ingestion time.
    """
    __tablename__ = "content"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_id: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(String(255))

    source_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    ingestion_source: Mapped[str] = mapped_column(String(255), nullable=False)

    # Naive UTC throughout
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_content_url", "url", unique=True),
        Index("ix_content_kind", "content_kind"),
        Index("ix_content_source_name", "source_name"),
        Index("ix_content_published_at", "published_at"),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """
    Database connection manager.

    The engine is created on first use and shared by every caller until
    close() is called.
    """

    def __init__(self, database_url: Optional[str], echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            if not self.database_url:
                raise ConfigurationError(
                    "DATABASE_URL environment variable is required for database operations"
                )
            self._engine = create_async_engine(
                self.database_url,
                echo=self.echo,
                future=True,
            )
            self._session_factory = async_sessionmaker(
                self._engine,
                expire_on_commit=False,
            )
            logger.info("Database engine created", dialect=self._engine.dialect.name)
        return self._engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def async_session(self) -> AsyncSession:
        """Open a new session (use as an async context manager)."""
        if self._session_factory is None:
            _ = self.engine
        return self._session_factory()

    async def create_tables(self):
        """Create all tables and their declared indexes."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Dispose of the engine; the next use opens a fresh one."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")
