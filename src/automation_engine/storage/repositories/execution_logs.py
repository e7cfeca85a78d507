"""Repository for run logs and their per-action step logs."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, insert, select, update

from automation_engine.storage.execution_logs import (
    RunStatus,
    action_execution_logs_table,
    execution_logs_table,
)
from automation_engine.storage.models import ActionExecutionLog, ExecutionLog
from automation_engine.storage.repositories.base import (
    BaseRepository,
    new_id,
    normalize_datetime,
    utcnow,
)


def _row_to_log(row: dict[str, Any]) -> ExecutionLog:
    return ExecutionLog(
        id=row["id"],
        automation_id=row["automation_id"],
        event_data=row["event_data"],
        status=row["status"],
        result=row["result"],
        error=row["error"],
        is_test=bool(row["is_test"]),
        executed_at=normalize_datetime(row["executed_at"]),
        finished_at=normalize_datetime(row["finished_at"]),
    )


def _row_to_step(row: dict[str, Any]) -> ActionExecutionLog:
    return ActionExecutionLog(
        id=row["id"],
        execution_id=row["execution_id"],
        action_id=row["action_id"],
        status=row["status"],
        result=row["result"],
        error=row["error"],
        console_output=row["console_output"] or [],
        seq=row["seq"],
        created_at=normalize_datetime(row["created_at"]),
    )


class ExecutionLogsRepository(BaseRepository):
    """Repository for the run audit trail."""

    async def create(
        self,
        automation_id: str,
        event_data: Any = None,
        is_test: bool = False,
        executed_at: datetime | None = None,
    ) -> ExecutionLog:
        """Open a run log. It starts as ``success`` until finalized otherwise."""
        log_id = new_id()
        stmt = insert(execution_logs_table).values(
            id=log_id,
            automation_id=automation_id,
            event_data=event_data,
            status=RunStatus.SUCCESS.value,
            is_test=is_test,
            executed_at=executed_at or utcnow(),
        )
        await self._execute_with_logging("create_execution_log", stmt)

        log = await self.get_by_id(log_id)
        if log is None:
            raise RuntimeError(f"Execution log {log_id} vanished after insert")
        return log

    async def finalize(
        self,
        log_id: str,
        status: RunStatus,
        result: Any = None,
        error: str | None = None,
    ) -> ExecutionLog | None:
        stmt = (
            update(execution_logs_table)
            .where(execution_logs_table.c.id == log_id)
            .values(
                status=status.value,
                result=result,
                error=error,
                finished_at=utcnow(),
            )
        )
        await self._execute_with_logging("finalize_execution_log", stmt)
        return await self.get_by_id(log_id)

    async def get_by_id(self, log_id: str) -> ExecutionLog | None:
        stmt = select(execution_logs_table).where(execution_logs_table.c.id == log_id)
        row = await self._fetch_one_with_logging("get_execution_log", stmt)
        return _row_to_log(row) if row else None

    async def list_for_automation(
        self, automation_id: str, limit: int | None = None
    ) -> list[ExecutionLog]:
        """Run logs for an automation, most recent first."""
        stmt = (
            select(execution_logs_table)
            .where(execution_logs_table.c.automation_id == automation_id)
            .order_by(
                execution_logs_table.c.executed_at.desc(),
                execution_logs_table.c.id,
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await self._fetch_all_with_logging("list_execution_logs", stmt)
        return [_row_to_log(row) for row in rows]

    async def add_step(
        self,
        execution_id: str,
        action_id: str,
        status: RunStatus,
        result: Any = None,
        error: str | None = None,
        console_output: list[str] | None = None,
    ) -> ActionExecutionLog:
        seq_stmt = select(func.max(action_execution_logs_table.c.seq)).where(
            action_execution_logs_table.c.execution_id == execution_id
        )
        seq_result = await self._execute_with_logging("next_step_seq", seq_stmt)
        seq = (seq_result.scalar() or 0) + 1

        step_id = new_id()
        stmt = insert(action_execution_logs_table).values(
            id=step_id,
            execution_id=execution_id,
            action_id=action_id,
            status=status.value,
            result=result,
            error=error,
            console_output=list(console_output or []),
            seq=seq,
            created_at=utcnow(),
        )
        await self._execute_with_logging("add_action_execution_log", stmt)

        row = await self._fetch_one_with_logging(
            "get_action_execution_log",
            select(action_execution_logs_table).where(
                action_execution_logs_table.c.id == step_id
            ),
        )
        if row is None:
            raise RuntimeError(f"Step log {step_id} vanished after insert")
        return _row_to_step(row)

    async def list_steps(self, execution_id: str) -> list[ActionExecutionLog]:
        """Step logs of a run in the order they were written."""
        stmt = (
            select(action_execution_logs_table)
            .where(action_execution_logs_table.c.execution_id == execution_id)
            .order_by(action_execution_logs_table.c.seq)
        )
        rows = await self._fetch_all_with_logging("list_action_execution_logs", stmt)
        return [_row_to_step(row) for row in rows]
