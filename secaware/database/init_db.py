"""
Database initialization and connection management.

This module provides functions for:
1. Creating and disposing the global async engine
2. Handing out the session factory used by the repositories
3. Creating the schema for development and tests
"""

from typing import Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from secaware.common.db.connection import get_database_settings
from secaware.common.logger import app_logger
from secaware.database.base import Base

logger = app_logger.getChild("database.init_db")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory bound to the global engine."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    """Create an ``AsyncSession`` factory for ``engine``."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def initialize_database(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        database_url: Database connection URL, taken from the environment when omitted
        echo: Whether to echo SQL statements
        pool_size: Connection pool size (ignored for SQLite)
        max_overflow: Connections allowed above pool_size (ignored for SQLite)
        pool_timeout: Seconds to wait for a pooled connection (ignored for SQLite)

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    if database_url is None:
        database_url = get_database_settings()["database_url"]

    engine_kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)

    try:
        logger.info(f"Initializing database with URL: {database_url[:10]}...")
        engine = create_async_engine(database_url, **engine_kwargs)

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    except Exception as e:
        logger.error(f"Failed to initialize async database: {e}")
        raise

    _engine = engine
    _session_factory = build_session_factory(engine)
    logger.info("Database engine initialized successfully")
    return engine


async def create_schema(engine: Optional[AsyncEngine] = None) -> None:
    """Create every table known to the declarative base."""
    # Register the mapped tables on Base.metadata
    import secaware.assessments.database_models  # noqa: F401
    import secaware.training.database_models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema created")


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed successfully")
