#!/usr/bin/env python3
"""
Database initialization script.

Creates the assessment tables in the database named by DATABASE_URL. Meant
for development databases; production schemas are managed by the Alembic
migrations under ``edusync/alembic/versions``.
"""

import sys
import asyncio

# Register the ORM models on the metadata
import edusync.assessments.database_models  # noqa: F401
from edusync.common.logger import get_logger
from edusync.config import settings
from edusync.database.init_db import close_database, initialize_database

logger = get_logger("edusync.scripts.init_db")


async def async_main():
    """Initialize the database."""
    try:
        await initialize_database(
            database_url=settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            create_schema=True
        )
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(async_main())
