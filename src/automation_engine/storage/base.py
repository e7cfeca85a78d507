"""
Base module for database connection and metadata.

This module defines the SQLAlchemy metadata object shared across the
storage modules and the engine factory used by the runtime and tests.
"""

import logging
import os
from typing import Any

from sqlalchemy import JSON, MetaData, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.pool.base import _ConnectionRecord

logger = logging.getLogger(__name__)

# Define shared metadata object
metadata = MetaData()

DEFAULT_DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///automations.db")

# JSON everywhere, JSONB on PostgreSQL
JSONType = JSON().with_variant(JSONB, "postgresql")


def create_engine_with_sqlite_optimizations(database_url: str) -> AsyncEngine:
    """Create engine with SQLite optimizations if applicable."""
    is_sqlite = database_url.startswith("sqlite")
    # StaticPool keeps a single SQLite connection alive (required for :memory:).
    # NullPool avoids event loop affinity issues with asyncpg and gives
    # file-backed SQLite one connection per transaction.
    pool_class = StaticPool if is_sqlite and ":memory:" in database_url else NullPool

    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args={
            "timeout": 30,  # 30 second busy timeout for SQLite
            "check_same_thread": False,
        }
        if is_sqlite
        else {},
        pool_pre_ping=pool_class != NullPool,
        poolclass=pool_class,
    )

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(
            dbapi_connection: Any,  # noqa: ANN401 # DBAPI connection type varies
            connection_record: _ConnectionRecord,
        ) -> None:
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA busy_timeout=30000")
                cursor.execute("PRAGMA synchronous=NORMAL")
                logger.debug("Applied SQLite pragmas")
            finally:
                cursor.close()

    return engine
