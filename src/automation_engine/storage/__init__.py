import asyncio
import logging
import random

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

# Register all tables on the shared metadata
from automation_engine.storage import automations as _automations  # noqa: F401
from automation_engine.storage import execution_logs as _execution_logs  # noqa: F401
from automation_engine.storage import records as _records  # noqa: F401
from automation_engine.storage.base import (
    DEFAULT_DATABASE_URL,
    create_engine_with_sqlite_optimizations,
    metadata,
)
from automation_engine.storage.context import DatabaseContext, get_db_context

logger = logging.getLogger(__name__)


async def init_db(engine: AsyncEngine, max_retries: int = 5, base_delay: float = 1.0) -> None:
    """
    Initializes the database schema from the SQLAlchemy metadata.

    Existing tables are left untouched. Transient connection errors are
    retried with exponential backoff.
    """
    for attempt in range(max_retries):
        try:
            logger.info(f"Creating database schema (attempt {attempt + 1})...")
            async with engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
            logger.info("Database schema ready.")
            return
        except OperationalError as e:
            if attempt == max_retries - 1:
                logger.critical(
                    f"Failed to initialize database after {max_retries} attempts: {e}"
                )
                raise
            delay = base_delay * (2**attempt) + random.uniform(0, base_delay)
            logger.warning(
                f"Database initialization failed ({e}), retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DatabaseContext",
    "create_engine_with_sqlite_optimizations",
    "get_db_context",
    "init_db",
    "metadata",
]
