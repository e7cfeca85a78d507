"""
Automation management: CRUD that keeps the cron timers consistent.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from automation_engine.automations.runner import AutomationRunner
from automation_engine.automations.scheduler import TriggerScheduler, parse_cron
from automation_engine.automations.schemas import (
    ActionCreate,
    ActionOrder,
    ActionUpdate,
    AutomationCreate,
    AutomationUpdate,
    TriggerUpdate,
)
from automation_engine.errors import NotFoundError, ValidationError
from automation_engine.interfaces import Notifier
from automation_engine.services.notifier import AUTOMATION_REMOVED, AUTOMATION_UPDATE
from automation_engine.storage.automations import TriggerType
from automation_engine.storage.context import DatabaseContext
from automation_engine.storage.models import (
    Action,
    Automation,
    ExecutionLog,
    ExecutionLogDetail,
)

logger = logging.getLogger(__name__)


def _validate(model: type[Any], data: Any) -> Any:  # noqa: ANN401
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


def _is_scheduled(automation: Automation) -> bool:
    return automation.trigger_type == TriggerType.SCHEDULED.value


class AutomationsService:
    """Owns automation CRUD, manual runs and table event dispatch."""

    def __init__(
        self,
        get_db_context: Callable[[], DatabaseContext],
        runner: AutomationRunner,
        scheduler: TriggerScheduler,
        notifier: Notifier | None = None,
    ) -> None:
        self.get_db_context = get_db_context
        self.runner = runner
        self.scheduler = scheduler
        self.notifier = notifier

    # --- automations ---

    async def create_automation(
        self, data: AutomationCreate | dict[str, Any]
    ) -> Automation:
        spec = _validate(AutomationCreate, data)
        if spec.trigger_type == TriggerType.SCHEDULED:
            # Reject bad expressions before anything is persisted
            parse_cron(
                spec.trigger_config.get("cron") or self.scheduler.default_cron,
                self.scheduler.timezone,
            )

        async with self.get_db_context() as db:
            automation = await db.automations.create(
                name=spec.name,
                trigger_type=spec.trigger_type.value,
                trigger_config=spec.trigger_config,
                description=spec.description,
                trigger_label=spec.trigger_label,
                trigger_description=spec.trigger_description,
                table_name=spec.table_name,
                condition=spec.condition,
                enabled=spec.enabled,
                created_by=spec.created_by,
            )
            await self._add_actions(db, automation.id, spec.actions)

        if _is_scheduled(automation) and automation.enabled:
            await self.scheduler.register(
                automation.id, automation.cron_expression(self.scheduler.default_cron)
            )

        self._publish(AUTOMATION_UPDATE, automation.model_dump(mode="json"))
        return automation

    async def update_automation(
        self, automation_id: str, data: AutomationUpdate | dict[str, Any]
    ) -> Automation:
        spec = _validate(AutomationUpdate, data)
        return await self._apply_update(automation_id, spec)

    async def _apply_update(
        self, automation_id: str, spec: TriggerUpdate
    ) -> Automation:
        fields: dict[str, Any] = {}
        for name in spec.model_fields_set - {"actions"}:
            value = getattr(spec, name)
            if value is None and name in {"name", "enabled", "trigger_type"}:
                continue
            if name == "trigger_type":
                value = value.value
            if name == "trigger_config" and value is None:
                value = {}
            fields[name] = value

        new_actions: list[ActionCreate] | None = getattr(spec, "actions", None)

        async with self.get_db_context() as db:
            old = await db.automations.get_by_id(automation_id)
            if old is None:
                raise NotFoundError(f"Automation not found: {automation_id}")
            merged_trigger_type = fields.get("trigger_type", old.trigger_type)
            merged_config = fields.get("trigger_config", old.trigger_config)
            if merged_trigger_type == TriggerType.SCHEDULED.value:
                parse_cron(
                    (merged_config or {}).get("cron") or self.scheduler.default_cron,
                    self.scheduler.timezone,
                )

            updated = await db.automations.update(automation_id, **fields)
            if updated is None:
                raise NotFoundError(f"Automation not found: {automation_id}")
            if new_actions is not None:
                await db.actions.delete_for_automation(automation_id)
                await self._add_actions(db, automation_id, new_actions)

        await self._sync_timer_after_update(old, updated)
        self._publish(AUTOMATION_UPDATE, updated.model_dump(mode="json"))
        return updated

    async def _sync_timer_after_update(self, old: Automation, updated: Automation) -> None:
        if _is_scheduled(old) and not _is_scheduled(updated):
            await self.scheduler.remove(updated.id)
        if not _is_scheduled(updated):
            return

        # A disabled automation keeps a paused timer carrying the current expression
        await self.scheduler.register(
            updated.id,
            updated.cron_expression(self.scheduler.default_cron),
            paused=not updated.enabled,
        )

    async def delete_automation(self, automation_id: str) -> Automation:
        await self.scheduler.remove(automation_id)

        async with self.get_db_context() as db:
            automation = await db.automations.get_by_id(automation_id)
            if automation is None:
                raise NotFoundError(f"Automation not found: {automation_id}")
            await db.actions.delete_for_automation(automation_id)
            await db.automations.delete(automation_id)

        self._publish(AUTOMATION_REMOVED, {"id": automation_id})
        return automation

    async def toggle_automation(self, automation_id: str, enabled: bool) -> Automation:
        async with self.get_db_context() as db:
            updated = await db.automations.set_enabled(automation_id, enabled)
        if updated is None:
            raise NotFoundError(f"Automation not found: {automation_id}")

        if _is_scheduled(updated):
            if not updated.enabled:
                await self.scheduler.stop(automation_id)
            elif self.scheduler.has(automation_id):
                await self.scheduler.start(automation_id)
            else:
                await self.scheduler.register(
                    automation_id, updated.cron_expression(self.scheduler.default_cron)
                )

        self._publish(AUTOMATION_UPDATE, updated.model_dump(mode="json"))
        return updated

    async def get_automation(self, automation_id: str) -> Automation | None:
        async with self.get_db_context() as db:
            return await db.automations.get_by_id(automation_id)

    async def list_automations(
        self, trigger_type: str | None = None, enabled_only: bool = False
    ) -> list[Automation]:
        async with self.get_db_context() as db:
            return await db.automations.list_all(
                trigger_type=trigger_type, enabled_only=enabled_only
            )

    # --- triggers ---

    async def get_trigger(self, automation_id: str) -> dict[str, Any] | None:
        automation = await self.get_automation(automation_id)
        if automation is None:
            return None
        return {
            "trigger_type": automation.trigger_type,
            "trigger_config": automation.trigger_config,
            "trigger_label": automation.trigger_label,
            "trigger_description": automation.trigger_description,
            "condition": automation.condition,
        }

    async def update_trigger(
        self, automation_id: str, data: TriggerUpdate | dict[str, Any]
    ) -> Automation:
        spec = _validate(TriggerUpdate, data)
        return await self._apply_update(automation_id, spec)

    # --- actions ---

    async def _add_actions(
        self, db: DatabaseContext, automation_id: str, actions: Iterable[ActionCreate]
    ) -> list[Action]:
        return [
            await db.actions.add(
                automation_id,
                action.type.value,
                params=action.params,
                order=action.order,
                condition=action.condition,
            )
            for action in actions
        ]

    async def _require_automation(self, db: DatabaseContext, automation_id: str) -> None:
        if await db.automations.get_by_id(automation_id) is None:
            raise NotFoundError(f"Automation not found: {automation_id}")

    async def _require_action(
        self, db: DatabaseContext, automation_id: str, action_id: str
    ) -> Action:
        action = await db.actions.get_by_id(action_id)
        if action is None or action.automation_id != automation_id:
            raise NotFoundError(
                f"Action {action_id} not found in automation {automation_id}"
            )
        return action

    async def list_actions(self, automation_id: str) -> list[Action]:
        async with self.get_db_context() as db:
            await self._require_automation(db, automation_id)
            return await db.actions.list_for_automation(automation_id)

    async def create_action(
        self, automation_id: str, data: ActionCreate | dict[str, Any]
    ) -> Action:
        spec = _validate(ActionCreate, data)
        async with self.get_db_context() as db:
            await self._require_automation(db, automation_id)
            (action,) = await self._add_actions(db, automation_id, [spec])
        return action

    async def get_action(self, automation_id: str, action_id: str) -> Action:
        async with self.get_db_context() as db:
            return await self._require_action(db, automation_id, action_id)

    async def update_action(
        self,
        automation_id: str,
        action_id: str,
        data: ActionUpdate | dict[str, Any],
    ) -> Action:
        spec = _validate(ActionUpdate, data)
        async with self.get_db_context() as db:
            await self._require_action(db, automation_id, action_id)
            updated = await db.actions.update(
                action_id,
                action_type=spec.type.value if spec.type is not None else None,
                params=spec.params,
                order=spec.order,
                condition=spec.condition,
                clear_condition="condition" in spec.model_fields_set,
            )
        if updated is None:
            raise NotFoundError(f"Action not found: {action_id}")
        return updated

    async def delete_action(self, automation_id: str, action_id: str) -> None:
        async with self.get_db_context() as db:
            await self._require_action(db, automation_id, action_id)
            await db.actions.delete(action_id)

    async def reorder_actions(
        self,
        automation_id: str,
        orders: Iterable[ActionOrder | dict[str, Any]],
    ) -> list[Action]:
        """Set the order of several actions in one transaction."""
        items = [_validate(ActionOrder, item) for item in orders]
        async with self.get_db_context() as db:
            await self._require_automation(db, automation_id)
            for item in items:
                await self._require_action(db, automation_id, item.action_id)
                await db.actions.set_order(item.action_id, item.order)
            return await db.actions.list_for_automation(automation_id)

    # --- tables ---

    async def create_table(self, table_name: str) -> str:
        """Create a logical table for record actions and scripts; returns its id."""
        if not isinstance(table_name, str) or not table_name.strip():
            raise ValidationError("Table name must be a non-empty string")
        async with self.get_db_context() as db:
            return await db.records.ensure_table(table_name.strip())

    # --- runs and logs ---

    async def run_automation(
        self,
        automation_id: str,
        event_data: Any = None,  # noqa: ANN401
        is_test: bool = False,
    ) -> ExecutionLog | None:
        return await self.runner.run(automation_id, event_data, is_test=is_test)

    async def list_execution_logs(
        self, automation_id: str, limit: int | None = None
    ) -> list[ExecutionLog]:
        async with self.get_db_context() as db:
            return await db.execution_logs.list_for_automation(automation_id, limit)

    async def get_execution_log(self, execution_id: str) -> ExecutionLogDetail:
        async with self.get_db_context() as db:
            log = await db.execution_logs.get_by_id(execution_id)
            if log is None:
                raise NotFoundError(f"Execution log not found: {execution_id}")
            steps = await db.execution_logs.list_steps(execution_id)
        return ExecutionLogDetail(**log.model_dump(), steps=steps)

    async def handle_table_event(
        self,
        table_name: str,
        trigger_type: TriggerType | str,
        record: Any,  # noqa: ANN401
    ) -> list[ExecutionLog]:
        """
        Run every enabled automation listening for this event on this table.

        Runs happen one after another; a failing run is logged and does not
        prevent the others.
        """
        try:
            trigger_value = TriggerType(trigger_type).value
        except ValueError as e:
            raise ValidationError(f"Unknown trigger type: {trigger_type}") from e
        logger.info(f"Table event: table={table_name}, event={trigger_value}")

        async with self.get_db_context() as db:
            automations = await db.automations.list_all(
                trigger_type=trigger_value, enabled_only=True
            )

        logs: list[ExecutionLog] = []
        for automation in automations:
            if automation.table_name not in (None, table_name):
                continue
            try:
                log = await self.runner.run(automation.id, {"record": record})
            except Exception as e:
                logger.error(
                    f"Run of automation {automation.id} for table event failed: {e}",
                    exc_info=True,
                )
                continue
            if log is not None:
                logs.append(log)
        return logs

    def _publish(self, event_type: str, payload: Any) -> None:  # noqa: ANN401
        if self.notifier is None:
            return
        try:
            self.notifier.publish(event_type, payload)
        except Exception as e:
            logger.error(f"Failed to publish {event_type}: {e}", exc_info=True)
