"""
ScreenShelf Backend - Database Session Management
===================================================

What:  Async SQLAlchemy engine, session factory and lifecycle helpers for the
       blob store.
How:   `Database` is built once from Settings by the service registry. It owns
       the engine (connection pool) and hands out sessions that commit on
       success and roll back on error.
Who:   BlobStore (reads/writes), the health route (SELECT 1), the lifespan
       handler (create_all / dispose).

Connection Pooling:
    pool_size / max_overflow / pool_pre_ping come from Settings.
    pool_recycle=3600 recycles connections every hour.
    SQLite URLs (tests) skip the pool arguments; aiosqlite picks its own pool.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Alembic reads Base.metadata for --autogenerate; Database.create_all()
    uses it for test and AUTO_CREATE_SCHEMA setups.
    """
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine with pool options suited to the backend."""
    options = {
        "echo": settings.log_level == "DEBUG",
    }
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(settings.database_url, **options)


class Database:
    """
    Owns the engine and session factory for one application instance.

    expire_on_commit=False keeps ORM attributes readable after commit, which
    the blob store relies on when it returns file rows to callers.
    """

    def __init__(self, settings: Settings):
        self.engine: AsyncEngine = build_engine(settings)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provide a transactional session scope.

        1. Creates a new session from the factory
        2. Yields it to the caller
        3. On success: commits
        4. On error: rolls back and re-raises
        5. Always: closes the session (returns connection to pool)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> bool:
        """Run SELECT 1. Returns False instead of raising."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    async def create_all(self) -> None:
        """Create every table registered on Base.metadata (idempotent)."""
        # Models must be imported so their tables are registered
        from app.models import blob  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def dispose(self) -> None:
        """Gracefully close all connections in the pool."""
        await self.engine.dispose()
