"""Database initialization and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from axle_server.core.config import settings
from axle_server.models.base import Base

logger = structlog.get_logger()


def create_engine() -> AsyncEngine:
    """Create the database engine.

    Returns:
        Async SQLAlchemy engine; pooled for PostgreSQL, plain for SQLite
    """
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=False)
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_recycle=300,  # Recycle connections every 5 minutes
    )


# Global engine and session maker
engine = create_engine()
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Verify the database is reachable.

    Schema management is external to this service; this only checks
    connectivity so startup fails loudly on a bad DATABASE_URL.

    Args:
        db_engine: Engine to check (defaults to the global engine)
    """
    async with (db_engine or engine).connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection verified")


async def create_tables() -> None:
    """Create all tables from model metadata (development and tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Usage:
        async with get_session() as session:
            result = await session.execute(select(Workout))
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def dialect_insert(session: AsyncSession, table: Any) -> Any:
    """Return an INSERT construct supporting ``on_conflict_do_update``.

    PostgreSQL in production, SQLite in tests; both expose the same
    ``on_conflict_do_update(index_elements=..., set_=...)`` API.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


async def close_database() -> None:
    """Close database connection pool."""
    await engine.dispose()
