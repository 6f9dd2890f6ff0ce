#!/usr/bin/env python3
"""
Database initialization script.

Creates every table of the engagement engine in the database named by
DATABASE_URL (or DB_TYPE and friends). Production deployments use the
alembic migrations instead.
"""

import sys
import asyncio

from secaware.common.logger import get_logger
from secaware.database.init_db import close_database, create_schema, initialize_database

logger = get_logger("secaware.scripts.init_db")


async def async_main():
    """Initialize the database."""
    try:
        await initialize_database()
        await create_schema()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(async_main())
