"""
DANGIT Backend — Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, and the declarative Base.
Why:   All connection handling lives in one object that the app context owns,
       so tests can swap in an in-memory SQLite database.
How:   `Database` wraps an async engine plus session factory. The per-request
       session dependency lives in dependencies.py and commits on success,
       rolls back on error.

Connection Pooling Strategy:
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600 for
    PostgreSQL. SQLite uses SQLAlchemy's own pool choice (StaticPool for
    in-memory databases, which rejects sizing arguments).
"""

import logging
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from dangit.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Registers every table on a single metadata object, which Alembic reads
    for migrations and `Database.create_all` uses for local runs and tests.
    """
    pass


class Database:
    """
    Owns the engine and session factory for one database URL.

    Created once per application (see AppContext); disposed on shutdown.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, **engine_kwargs)
        # expire_on_commit=False: ORM objects stay readable after commit,
        # which the response serializers rely on
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        kwargs: Dict[str, Any] = {}
        if settings.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in settings.database_url or settings.database_url.endswith("://"):
                kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
                pool_recycle=3600,
            )
        return cls(settings.database_url, echo=settings.log_level == "DEBUG", **kwargs)

    @classmethod
    def in_memory(cls) -> "Database":
        """Single shared connection SQLite database (tests and demos)."""
        return cls(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    async def create_all(self) -> None:
        """Creates every registered table. Production schemas come from Alembic."""
        # Import models so their tables are registered on Base.metadata
        from dangit import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """SELECT 1 against the pool; used by the health endpoint."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    async def dispose(self) -> None:
        """Closes every pooled connection (application shutdown)."""
        await self.engine.dispose()
