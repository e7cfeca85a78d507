"""Shared plumbing for the storage repositories."""

import logging
import uuid
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from dateutil.parser import parse as parse_datetime
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.sql import Delete, Insert, Select, Update

from automation_engine.storage.context import DatabaseContext

T = TypeVar("T")


def normalize_datetime(value: datetime | str | None) -> datetime | None:
    """
    Coerce a stored timestamp to an aware UTC datetime.

    aiosqlite hands back naive datetimes, or ISO strings for some column
    types; both are treated as UTC.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_datetime(value)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class BaseRepository:
    """Gives each repository its transaction and a logger named after it."""

    def __init__(self, db_context: DatabaseContext) -> None:
        self._db = db_context
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    async def _logged(self, operation_name: str, call: Awaitable[T]) -> T:
        """Await a storage call, logging database errors before re-raising."""
        try:
            return await call
        except SQLAlchemyError as e:
            self._logger.error(f"Database error in {operation_name}: {e}", exc_info=True)
            raise

    async def _execute_with_logging(
        self,
        operation_name: str,
        query: "Select | Insert | Update | Delete",
        params: dict[str, object] | None = None,
    ) -> "CursorResult[object]":
        return await self._logged(
            operation_name, self._db.execute_with_retry(query, params)
        )

    async def _fetch_all_with_logging(
        self, operation_name: str, query: "Select"
    ) -> list[dict[str, Any]]:
        return await self._logged(operation_name, self._db.fetch_all(query))

    async def _fetch_one_with_logging(
        self, operation_name: str, query: "Select"
    ) -> dict[str, Any] | None:
        return await self._logged(operation_name, self._db.fetch_one(query))
