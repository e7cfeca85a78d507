"""
Table API for scripts and record actions.

Every operation is scoped to one logical table, named by the first argument,
and runs in its own short storage transaction.
"""

import logging
from collections.abc import Callable
from typing import Any

from automation_engine.errors import NotFoundError, ValidationError
from automation_engine.storage.context import DatabaseContext

logger = logging.getLogger(__name__)

RecordDict = dict[str, Any]


def _require_name(table_name: Any) -> str:  # noqa: ANN401
    if not isinstance(table_name, str) or not table_name:
        raise ValidationError("Table name must be a non-empty string")
    return table_name


def _require_fields(fields: Any) -> dict[str, Any]:  # noqa: ANN401
    if fields is None:
        return {}
    if not isinstance(fields, dict):
        raise ValidationError("Record fields must be a dictionary")
    return fields


class TableAPI:
    """
    Record operations backed by the storage collaborator.

    Records are returned as ``{"id": ..., "fields": {...}}`` dictionaries.
    """

    def __init__(self, db_context_factory: Callable[[], DatabaseContext]) -> None:
        self._db_context_factory = db_context_factory

    async def get_table(self, table_name: str) -> str:
        """Validate that a table exists and return its name."""
        table_name = _require_name(table_name)
        async with self._db_context_factory() as db:
            exists = await db.records.table_exists(table_name)
        if not exists:
            raise NotFoundError(f'Table "{table_name}" not found')
        return table_name

    async def select_records(
        self,
        table_name: str,
        filter: dict[str, Any] | None = None,  # noqa: A002
        sort: Any = None,  # noqa: ANN401
    ) -> list[RecordDict]:
        table_name = _require_name(table_name)
        if filter is not None and not isinstance(filter, dict):
            raise ValidationError("Record filter must be a dictionary")
        async with self._db_context_factory() as db:
            records = await db.records.select_records(table_name, filter, sort)
        return [r.to_script_dict() for r in records]

    async def select_record(self, table_name: str, record_id: str) -> RecordDict | None:
        table_name = _require_name(table_name)
        async with self._db_context_factory() as db:
            record = await db.records.select_record(table_name, str(record_id))
        return record.to_script_dict() if record else None

    async def create_record(
        self, table_name: str, fields: dict[str, Any] | None = None
    ) -> RecordDict:
        table_name = _require_name(table_name)
        async with self._db_context_factory() as db:
            record = await db.records.create_record(table_name, _require_fields(fields))
        logger.debug(f"Created record {record.id} in '{table_name}'")
        return record.to_script_dict()

    async def update_record(
        self, table_name: str, record_id: str, fields: dict[str, Any] | None = None
    ) -> RecordDict:
        table_name = _require_name(table_name)
        async with self._db_context_factory() as db:
            record = await db.records.update_record(
                table_name, str(record_id), _require_fields(fields)
            )
        return record.to_script_dict()

    async def delete_record(self, table_name: str, record_id: str) -> dict[str, Any]:
        table_name = _require_name(table_name)
        async with self._db_context_factory() as db:
            await db.records.delete_record(table_name, str(record_id))
        return {"deleted": True, "id": str(record_id)}

    def script_functions(self) -> dict[str, Callable[..., Any]]:
        """External functions exposed to sandboxed scripts."""
        return {
            "get_table": self.get_table,
            "table_select_records": self.select_records,
            "table_select_record": self.select_record,
            "table_create_record": self.create_record,
            "table_update_record": self.update_record,
            "table_delete_record": self.delete_record,
        }
