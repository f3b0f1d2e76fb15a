"""
Database connection pool and schema management.

The application talks to PostgreSQL through one asyncpg pool created at
startup. DDL comes from the SQLAlchemy declarative models and is applied
on demand with ``create_schema``.
"""

import asyncpg
import structlog
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine

from pubportal.config import get_settings
from pubportal.models.tables import Base

logger = structlog.get_logger(__name__)

_pool: Optional[asyncpg.Pool] = None


async def init_db_pool() -> asyncpg.Pool:
    """
    Initialize database connection pool.

    Should be called during application startup.

    Returns:
        asyncpg connection pool
    """
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.database_dsn,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout
        )

        logger.info(
            "database_pool_initialized",
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            database=settings.database_dsn.split("@")[-1]
        )

        return _pool

    except Exception as e:
        logger.error("database_pool_init_failed", error=str(e))
        raise


async def close_db_pool():
    """
    Close database connection pool.

    Should be called during application shutdown.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        logger.info("database_pool_closed")
        _pool = None


def get_db_pool() -> asyncpg.Pool:
    """
    Get database connection pool.

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        logger.error("database_pool_not_initialized")
        raise RuntimeError(
            "Database pool not initialized. Call init_db_pool() during startup."
        )
    return _pool


async def create_schema(database_url: Optional[str] = None) -> None:
    """
    Create missing tables from the declarative models.

    Args:
        database_url: SQLAlchemy asyncpg URL; defaults to the configured database
    """
    engine = create_async_engine(database_url or get_settings().database_url_async)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_applied", tables=len(Base.metadata.tables))
    finally:
        await engine.dispose()
