"""Repository for automation definitions."""

from typing import Any

from sqlalchemy import delete, insert, select, update

from automation_engine.storage.automations import automations_table
from automation_engine.storage.models import Automation
from automation_engine.storage.repositories.base import (
    BaseRepository,
    new_id,
    normalize_datetime,
    utcnow,
)

# Sentinel to distinguish "not provided" from "explicitly None"
_UNSET: Any = object()

_UPDATABLE_FIELDS = (
    "name",
    "description",
    "trigger_type",
    "trigger_config",
    "trigger_label",
    "trigger_description",
    "table_name",
    "condition",
    "enabled",
)


def _row_to_automation(row: dict[str, Any]) -> Automation:
    return Automation(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        trigger_type=row["trigger_type"],
        trigger_config=row["trigger_config"] or {},
        trigger_label=row["trigger_label"],
        trigger_description=row["trigger_description"],
        table_name=row["table_name"],
        condition=row["condition"],
        enabled=bool(row["enabled"]),
        created_by=row["created_by"],
        created_at=normalize_datetime(row["created_at"]),
        updated_at=normalize_datetime(row["updated_at"]),
    )


class AutomationsRepository(BaseRepository):
    """Repository for managing automations."""

    async def create(
        self,
        name: str,
        trigger_type: str,
        trigger_config: dict[str, Any] | None = None,
        description: str | None = None,
        trigger_label: str | None = None,
        trigger_description: str | None = None,
        table_name: str | None = None,
        condition: dict[str, Any] | None = None,
        enabled: bool = True,
        created_by: str | None = None,
        automation_id: str | None = None,
    ) -> Automation:
        now = utcnow()
        automation_id = automation_id or new_id()
        stmt = insert(automations_table).values(
            id=automation_id,
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
            trigger_label=trigger_label,
            trigger_description=trigger_description,
            table_name=table_name,
            condition=condition,
            enabled=enabled,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        await self._execute_with_logging("create_automation", stmt)
        self._logger.info(f"Created automation '{name}' (ID: {automation_id})")

        automation = await self.get_by_id(automation_id)
        if automation is None:
            raise RuntimeError(f"Automation {automation_id} vanished after insert")
        return automation

    async def get_by_id(self, automation_id: str) -> Automation | None:
        stmt = select(automations_table).where(automations_table.c.id == automation_id)
        row = await self._fetch_one_with_logging("get_automation", stmt)
        return _row_to_automation(row) if row else None

    async def list_all(
        self,
        trigger_type: str | None = None,
        enabled_only: bool = False,
    ) -> list[Automation]:
        """List automations, oldest first."""
        stmt = select(automations_table)
        if trigger_type is not None:
            stmt = stmt.where(automations_table.c.trigger_type == trigger_type)
        if enabled_only:
            stmt = stmt.where(automations_table.c.enabled.is_(True))
        stmt = stmt.order_by(automations_table.c.created_at, automations_table.c.id)
        rows = await self._fetch_all_with_logging("list_automations", stmt)
        return [_row_to_automation(row) for row in rows]

    async def update(self, automation_id: str, **fields: Any) -> Automation | None:
        """
        Update the given fields of an automation.

        Only keyword arguments actually passed are written, so passing
        ``condition=None`` clears the condition while omitting it leaves it alone.

        Returns:
            The updated automation, or None if it does not exist.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown automation fields: {sorted(unknown)}")

        values = {k: v for k, v in fields.items() if v is not _UNSET}
        if values:
            values["updated_at"] = utcnow()
            stmt = (
                update(automations_table)
                .where(automations_table.c.id == automation_id)
                .values(**values)
            )
            result = await self._execute_with_logging("update_automation", stmt)
            if result.rowcount == 0:
                return None
        return await self.get_by_id(automation_id)

    async def set_enabled(self, automation_id: str, enabled: bool) -> Automation | None:
        return await self.update(automation_id, enabled=enabled)

    async def delete(self, automation_id: str) -> bool:
        stmt = delete(automations_table).where(automations_table.c.id == automation_id)
        result = await self._execute_with_logging("delete_automation", stmt)
        deleted = result.rowcount > 0
        if deleted:
            self._logger.info(f"Deleted automation {automation_id}")
        return deleted
