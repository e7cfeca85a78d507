"""Repository for the ordered actions of an automation."""

from typing import Any

from sqlalchemy import delete, func, insert, select, update

from automation_engine.storage.automations import automation_actions_table
from automation_engine.storage.models import Action
from automation_engine.storage.repositories.base import (
    BaseRepository,
    new_id,
    normalize_datetime,
    utcnow,
)


def _row_to_action(row: dict[str, Any]) -> Action:
    return Action(
        id=row["id"],
        automation_id=row["automation_id"],
        order=row["position"],
        type=row["type"],
        params=row["params"] or {},
        condition=row["condition"],
        seq=row["seq"],
        created_at=normalize_datetime(row["created_at"]),
    )


class ActionsRepository(BaseRepository):
    """Repository for managing automation actions."""

    async def _next_seq(self, automation_id: str) -> int:
        stmt = select(func.max(automation_actions_table.c.seq)).where(
            automation_actions_table.c.automation_id == automation_id
        )
        result = await self._execute_with_logging("next_action_seq", stmt)
        current = result.scalar()
        return (current or 0) + 1

    async def add(
        self,
        automation_id: str,
        action_type: str,
        params: dict[str, Any] | None = None,
        order: int = 0,
        condition: dict[str, Any] | None = None,
        action_id: str | None = None,
    ) -> Action:
        action_id = action_id or new_id()
        stmt = insert(automation_actions_table).values(
            id=action_id,
            automation_id=automation_id,
            position=order,
            type=action_type,
            params=params or {},
            condition=condition,
            seq=await self._next_seq(automation_id),
            created_at=utcnow(),
        )
        await self._execute_with_logging("add_action", stmt)

        action = await self.get_by_id(action_id)
        if action is None:
            raise RuntimeError(f"Action {action_id} vanished after insert")
        return action

    async def get_by_id(self, action_id: str) -> Action | None:
        stmt = select(automation_actions_table).where(
            automation_actions_table.c.id == action_id
        )
        row = await self._fetch_one_with_logging("get_action", stmt)
        return _row_to_action(row) if row else None

    async def list_for_automation(self, automation_id: str) -> list[Action]:
        """Actions in pipeline order: ascending order, then insertion order."""
        stmt = (
            select(automation_actions_table)
            .where(automation_actions_table.c.automation_id == automation_id)
            .order_by(
                automation_actions_table.c.position,
                automation_actions_table.c.seq,
            )
        )
        rows = await self._fetch_all_with_logging("list_actions", stmt)
        return [_row_to_action(row) for row in rows]

    async def update(
        self,
        action_id: str,
        action_type: str | None = None,
        params: dict[str, Any] | None = None,
        order: int | None = None,
        condition: Any = None,
        clear_condition: bool = False,
    ) -> Action | None:
        values: dict[str, Any] = {}
        if action_type is not None:
            values["type"] = action_type
        if params is not None:
            values["params"] = params
        if order is not None:
            values["position"] = order
        if condition is not None or clear_condition:
            values["condition"] = condition

        if values:
            stmt = (
                update(automation_actions_table)
                .where(automation_actions_table.c.id == action_id)
                .values(**values)
            )
            result = await self._execute_with_logging("update_action", stmt)
            if result.rowcount == 0:
                return None
        return await self.get_by_id(action_id)

    async def set_order(self, action_id: str, order: int) -> None:
        stmt = (
            update(automation_actions_table)
            .where(automation_actions_table.c.id == action_id)
            .values(position=order)
        )
        await self._execute_with_logging("set_action_order", stmt)

    async def delete(self, action_id: str) -> bool:
        stmt = delete(automation_actions_table).where(
            automation_actions_table.c.id == action_id
        )
        result = await self._execute_with_logging("delete_action", stmt)
        return result.rowcount > 0

    async def delete_for_automation(self, automation_id: str) -> int:
        stmt = delete(automation_actions_table).where(
            automation_actions_table.c.automation_id == automation_id
        )
        result = await self._execute_with_logging("delete_actions", stmt)
        return result.rowcount
