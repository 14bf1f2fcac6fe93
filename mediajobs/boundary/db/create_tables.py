"""
Database table creation script.

Creates all tables defined in ORM models using SQLAlchemy metadata.

Dependencies: sqlalchemy, mediajobs.configs
System role: Database schema initialization

Usage:
    python -m mediajobs.boundary.db.create_tables
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from mediajobs.boundary.db.base import Base
from mediajobs.boundary.db.connection import get_async_engine
from mediajobs.configs import get_settings
from mediajobs.observability.logger import configure_logging

# Import all models to register them with Base.metadata
from mediajobs.boundary.db.models.job_model import JobModel  # noqa: F401

logger = logging.getLogger(__name__)


async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Create all database tables from registered ORM models.

    Idempotent: calls CREATE TABLE IF NOT EXISTS for each model, so safe
    to run on every startup. Existing tables remain unchanged.

    Args:
        engine: Engine to use (defaults to the configured engine)

    Raises:
        SQLAlchemyError: If database connection fails or table creation fails
    """
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", extra={"tables": sorted(Base.metadata.tables)})


async def drop_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Drop all database tables and their data.

    WARNING: Irreversible data loss. Only use in development environments.
    """
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("All tables dropped")


def main() -> None:
    """Console entry point: create tables for the configured database."""
    configure_logging(get_settings().log_level)
    asyncio.run(create_all_tables())


if __name__ == "__main__":
    main()
