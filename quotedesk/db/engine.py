"""Async PostgreSQL engine and the session factory shared by the repository and audit log.

Sessions are short-lived: the repository opens one per call and commits
before returning, so nothing here manages request-scoped transactions.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quotedesk.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the asyncpg engine; pre-ping keeps stale pooled connections out of the retry path."""
    return create_async_engine(
        database_url or settings.db.database_url,
        echo=settings.log_level == "DEBUG",
        pool_size=settings.db.pool_size,
        max_overflow=settings.db.pool_size * 2,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_timeout=settings.resilience.operation_timeout,
    )


engine: AsyncEngine = build_engine()

# expire_on_commit=False: quotes are returned to callers after their session closes
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Check connectivity on startup and release the pool on shutdown.

    Outside production the schema is created from the models; production
    relies on the Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if not settings.is_production:
            from quotedesk.models import Base

            await conn.run_sync(Base.metadata.create_all)
    logger.info("Database reachable (pool_size=%d)", settings.db.pool_size)
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool disposed")
