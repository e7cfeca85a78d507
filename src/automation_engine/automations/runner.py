"""
The run pipeline: one end-to-end invocation of an automation.
"""

import asyncio
import json
import logging
import weakref
from collections.abc import Callable
from typing import Any

from automation_engine.actions.executor import ActionExecutor
from automation_engine.automations.condition_evaluator import evaluate
from automation_engine.errors import (
    ActionExecutionError,
    AutomationError,
    NotFoundError,
)
from automation_engine.interfaces import Notifier
from automation_engine.services.notifier import AUTOMATION_RUN
from automation_engine.storage.context import DatabaseContext
from automation_engine.storage.execution_logs import RunStatus
from automation_engine.storage.models import Action, ExecutionLog

logger = logging.getLogger(__name__)

CONDITION_NOT_MET_RESULT = {"msg": "Condition not met, no actions performed"}
STEP_SKIPPED_RESULT = {"msg": "Step skipped: condition not met"}


def step_result_key(action_id: str) -> str:
    return f"step_{action_id}_result"


def to_jsonable(value: Any) -> Any:  # noqa: ANN401
    """Deep-copy a value into plain JSON types for persistence."""
    return json.loads(json.dumps(value, default=str))


def build_context(event_data: Any) -> dict[str, Any]:  # noqa: ANN401
    """Initial run context: the event plus the record it carries, if any."""
    record = event_data.get("record") if isinstance(event_data, dict) else None
    return {"event_data": event_data, "record": record}


def sort_actions(actions: list[Action]) -> list[Action]:
    """Ascending ``order``; ties keep their persisted insertion order."""
    return sorted(actions, key=lambda a: (a.order, a.seq))


class AutomationRunner:
    """
    Runs automations and records every run in the execution log.

    Step failures never escape ``run``: they end the pipeline and are
    recorded on the step log and on the run log.
    """

    def __init__(
        self,
        get_db_context: Callable[[], DatabaseContext],
        executor: ActionExecutor,
        notifier: Notifier | None = None,
        exclusive_runs: bool = False,
    ) -> None:
        self.get_db_context = get_db_context
        self.executor = executor
        self.notifier = notifier
        self.exclusive_runs = exclusive_runs
        # Entries vanish once no run holds or waits on the lock
        self._run_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def run(
        self,
        automation_id: str,
        event_data: Any = None,  # noqa: ANN401
        is_test: bool = False,
        input_vars: dict[str, Any] | None = None,
    ) -> ExecutionLog | None:
        """
        Run an automation once.

        Returns:
            The finalized execution log, or None when the automation is
            disabled and this is not a test run.

        Raises:
            NotFoundError: If the automation does not exist.
        """
        if not self.exclusive_runs:
            return await self._run(automation_id, event_data, is_test, input_vars)

        lock = self._run_locks.get(automation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._run_locks[automation_id] = lock
        async with lock:
            return await self._run(automation_id, event_data, is_test, input_vars)

    async def _run(
        self,
        automation_id: str,
        event_data: Any,  # noqa: ANN401
        is_test: bool,
        input_vars: dict[str, Any] | None,
    ) -> ExecutionLog | None:
        async with self.get_db_context() as db:
            automation = await db.automations.get_by_id(automation_id)
            if automation is None:
                raise NotFoundError(f"Automation not found: {automation_id}")
            actions = await db.actions.list_for_automation(automation_id)

        if not automation.enabled and not is_test:
            logger.info(f"Automation {automation_id} is disabled, not running")
            return None

        event_data = to_jsonable(event_data)
        async with self.get_db_context() as db:
            log = await db.execution_logs.create(
                automation_id, event_data=event_data, is_test=is_test
            )
        logger.info(
            f"Running automation '{automation.name}' ({automation_id}), "
            f"execution {log.id}{' [test]' if is_test else ''}"
        )

        context = build_context(event_data)

        try:
            passed = evaluate(automation.condition, context)
        except AutomationError as e:
            logger.warning(f"Automation {automation_id} condition failed: {e}")
            return await self._finalize(log.id, RunStatus.ERROR, error=str(e))

        if not passed and not is_test:
            logger.info(
                f"Automation {automation_id} condition not met, skipping actions"
            )
            return await self._finalize(
                log.id, RunStatus.SUCCESS, result=CONDITION_NOT_MET_RESULT
            )

        error: str | None = None
        result: Any = None
        try:
            for action in sort_actions(actions):
                error = await self._run_step(
                    log.id, action, context, is_test, input_vars
                )
                if error is not None:
                    break
            else:
                result = to_jsonable(context)
        except Exception as e:
            logger.error(
                f"Unexpected error running automation {automation_id}: {e}",
                exc_info=True,
            )
            error = str(e) or type(e).__name__

        if error is not None:
            return await self._finalize(log.id, RunStatus.ERROR, error=error)
        return await self._finalize(log.id, RunStatus.SUCCESS, result=result)

    async def _run_step(
        self,
        execution_id: str,
        action: Action,
        context: dict[str, Any],
        is_test: bool,
        input_vars: dict[str, Any] | None,
    ) -> str | None:
        """Run one action and write its step log. Returns the error, if any."""
        console_output: list[str] = []
        try:
            if not is_test and not evaluate(action.condition, context):
                async with self.get_db_context() as db:
                    await db.execution_logs.add_step(
                        execution_id,
                        action.id,
                        RunStatus.SUCCESS,
                        result=STEP_SKIPPED_RESULT,
                    )
                logger.debug(f"Step {action.id} skipped: condition not met")
                return None

            outcome = await self.executor.execute(
                action.type, action.params, context, input_vars
            )
            result = to_jsonable(outcome.result)
            async with self.get_db_context() as db:
                await db.execution_logs.add_step(
                    execution_id,
                    action.id,
                    RunStatus.SUCCESS,
                    result=result,
                    console_output=outcome.console_output,
                )
        except Exception as e:
            message = str(e) or type(e).__name__
            if isinstance(e, ActionExecutionError):
                console_output = e.console_output
            if isinstance(e, AutomationError):
                logger.warning(f"Step {action.id} ({action.type}) failed: {e}")
            else:
                logger.error(
                    f"Unexpected error in step {action.id} ({action.type}): {e}",
                    exc_info=True,
                )
            async with self.get_db_context() as db:
                await db.execution_logs.add_step(
                    execution_id,
                    action.id,
                    RunStatus.ERROR,
                    error=message,
                    console_output=console_output,
                )
            return message

        context[step_result_key(action.id)] = result
        return None

    async def _finalize(
        self,
        execution_id: str,
        status: RunStatus,
        result: Any = None,  # noqa: ANN401
        error: str | None = None,
    ) -> ExecutionLog:
        async with self.get_db_context() as db:
            log = await db.execution_logs.finalize(
                execution_id, status, result=result, error=error
            )
        if log is None:
            raise NotFoundError(f"Execution log vanished: {execution_id}")

        logger.info(f"Execution {execution_id} finished with status {status.value}")
        self._publish(log)
        return log

    def _publish(self, log: ExecutionLog) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(AUTOMATION_RUN, log.model_dump(mode="json"))
        except Exception as e:
            # Publishing is fire-and-forget and never changes the run's outcome
            logger.error(f"Failed to publish run {log.id}: {e}", exc_info=True)
