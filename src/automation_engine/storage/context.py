"""
Transactional storage context.

A ``DatabaseContext`` wraps one SQLAlchemy transaction, retries transient
driver errors and hands out the repositories that run inside it.
"""

import asyncio
import logging
import random
from types import TracebackType
from typing import TYPE_CHECKING, Any

from sqlalchemy import TextClause
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import DBAPIError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Delete, Insert, Select, Update

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from automation_engine.storage.repositories import (
        ActionsRepository,
        AutomationsRepository,
        ExecutionLogsRepository,
        RecordsRepository,
    )

logger = logging.getLogger(__name__)

Query = Select | Insert | Update | Delete | TextClause


def _is_retryable(error: DBAPIError) -> bool:
    # Bad SQL fails the same way every time
    return not (
        isinstance(error, ProgrammingError) or isinstance(error.orig, ProgrammingError)
    )


class DatabaseContext:
    """
    One storage transaction: commit on clean exit, rollback on exception.

    Not reentrant; open a new context for each unit of work.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        max_retries: int = 3,
        base_delay: float = 0.5,
    ) -> None:
        """
        Args:
            engine: Engine the transaction is opened on.
            max_retries: Attempts per statement before a transient error is raised.
            base_delay: First backoff delay in seconds; doubles on each retry.
        """
        self.engine = engine
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.conn: AsyncConnection | None = None
        self._transaction_cm: AbstractAsyncContextManager[AsyncConnection] | None = None

        self._automations: AutomationsRepository | None = None
        self._actions: ActionsRepository | None = None
        self._execution_logs: ExecutionLogsRepository | None = None
        self._records: RecordsRepository | None = None

    async def __aenter__(self) -> "DatabaseContext":
        if self._transaction_cm is not None:
            raise RuntimeError("DatabaseContext is not reentrant")

        self._transaction_cm = self.engine.begin()
        self.conn = await self._transaction_cm.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._transaction_cm is None:
            return

        try:
            await self._transaction_cm.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            self.conn = None
            self._transaction_cm = None

    async def execute_with_retry(
        self, query: Query, params: dict[str, Any] | None = None
    ) -> CursorResult:
        """
        Execute one statement, backing off and retrying transient errors.

        Raises:
            RuntimeError: If called outside ``async with``.
            DBAPIError: If the error is not retryable or retries run out.
        """
        if self.conn is None:
            raise RuntimeError("No active database connection")

        attempt = 0
        while True:
            try:
                if params:
                    return await self.conn.execute(query, params)
                return await self.conn.execute(query)
            except DBAPIError as e:
                attempt += 1
                if not _is_retryable(e):
                    logger.error(f"Non-retryable database error: {e}", exc_info=True)
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"Giving up after {attempt} attempt(s): {e}")
                    raise

                delay = self.base_delay * 2 ** (attempt - 1) + random.uniform(
                    0, self.base_delay
                )
                logger.warning(
                    f"Transient database error (attempt {attempt}/{self.max_retries}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

    async def fetch_all(
        self, query: Select | TextClause, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        result = await self.execute_with_retry(query, params)
        return [dict(row) for row in result.mappings().all()]

    async def fetch_one(
        self, query: Select | TextClause, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        result = await self.execute_with_retry(query, params)
        row = result.mappings().one_or_none()
        return dict(row) if row else None

    @property
    def automations(self) -> "AutomationsRepository":
        if self._automations is None:
            from automation_engine.storage.repositories import AutomationsRepository

            self._automations = AutomationsRepository(self)
        return self._automations

    @property
    def actions(self) -> "ActionsRepository":
        if self._actions is None:
            from automation_engine.storage.repositories import ActionsRepository

            self._actions = ActionsRepository(self)
        return self._actions

    @property
    def execution_logs(self) -> "ExecutionLogsRepository":
        if self._execution_logs is None:
            from automation_engine.storage.repositories import ExecutionLogsRepository

            self._execution_logs = ExecutionLogsRepository(self)
        return self._execution_logs

    @property
    def records(self) -> "RecordsRepository":
        if self._records is None:
            from automation_engine.storage.repositories import RecordsRepository

            self._records = RecordsRepository(self)
        return self._records


def get_db_context(
    engine: AsyncEngine, max_retries: int = 3, base_delay: float = 0.5
) -> DatabaseContext:
    """
    Open a storage context on ``engine``.

    Example:
        ```python
        async with get_db_context(engine) as db:
            automation = await db.automations.get_by_id(automation_id)
        ```
    """
    return DatabaseContext(engine, max_retries, base_delay)
