"""Repository for logical tables and their records."""

from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, insert, select, update

from automation_engine.errors import NotFoundError, ValidationError
from automation_engine.storage.models import TableRecord
from automation_engine.storage.records import (
    table_definitions_table,
    table_records_table,
)
from automation_engine.storage.repositories.base import (
    BaseRepository,
    new_id,
    normalize_datetime,
    utcnow,
)


def _row_to_record(row: dict[str, Any], table_name: str) -> TableRecord:
    return TableRecord(
        id=row["id"],
        table_name=table_name,
        fields=row["data"] or {},
        created_at=normalize_datetime(row["created_at"]),
        updated_at=normalize_datetime(row["updated_at"]),
    )


def normalize_sort(sort: Any) -> list[tuple[str, bool]]:
    """
    Normalize a sort specification to ``[(field, descending), ...]``.

    Accepts ``{"field": "x", "direction": "desc"}``, a list of those, or a
    mapping of ``{field: direction}``.
    """
    if sort is None:
        return []
    if isinstance(sort, Mapping):
        if "field" in sort:
            specs: list[Any] = [sort]
        else:
            specs = [{"field": k, "direction": v} for k, v in sort.items()]
    elif isinstance(sort, (list, tuple)):
        specs = list(sort)
    else:
        raise ValidationError(f"Invalid sort specification: {sort!r}")

    normalized = []
    for spec in specs:
        if not isinstance(spec, Mapping) or not isinstance(spec.get("field"), str):
            raise ValidationError(f"Invalid sort specification: {spec!r}")
        direction = str(spec.get("direction", "asc")).lower()
        if direction not in {"asc", "desc"}:
            raise ValidationError(f"Invalid sort direction: {direction!r}")
        normalized.append((spec["field"], direction == "desc"))
    return normalized


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing values sort first; values of different kinds never compare directly
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    return (4, repr(value))


class RecordsRepository(BaseRepository):
    """Repository for the logical table/record API."""

    async def _resolve_table_id(self, table_name: str) -> str:
        stmt = select(table_definitions_table.c.id).where(
            table_definitions_table.c.name == table_name
        )
        row = await self._fetch_one_with_logging("resolve_table", stmt)
        if row is None:
            raise NotFoundError(f'Table "{table_name}" not found')
        return row["id"]

    async def ensure_table(self, table_name: str) -> str:
        """Create the table definition if needed and return its id."""
        stmt = select(table_definitions_table.c.id).where(
            table_definitions_table.c.name == table_name
        )
        row = await self._fetch_one_with_logging("ensure_table", stmt)
        if row is not None:
            return row["id"]

        table_id = new_id()
        await self._execute_with_logging(
            "create_table",
            insert(table_definitions_table).values(
                id=table_id, name=table_name, created_at=utcnow()
            ),
        )
        self._logger.info(f"Created table '{table_name}' (ID: {table_id})")
        return table_id

    async def table_exists(self, table_name: str) -> bool:
        try:
            await self._resolve_table_id(table_name)
        except NotFoundError:
            return False
        return True

    async def select_records(
        self,
        table_name: str,
        filter: Mapping[str, Any] | None = None,  # noqa: A002
        sort: Any = None,
    ) -> list[TableRecord]:
        table_id = await self._resolve_table_id(table_name)
        stmt = (
            select(table_records_table)
            .where(table_records_table.c.table_id == table_id)
            .order_by(table_records_table.c.created_at, table_records_table.c.id)
        )
        rows = await self._fetch_all_with_logging("select_records", stmt)
        records = [_row_to_record(row, table_name) for row in rows]

        if filter:
            records = [
                r
                for r in records
                if all(
                    key in r.fields and r.fields[key] == value
                    for key, value in filter.items()
                )
            ]

        # Apply the least significant key first so earlier specs win
        for field, descending in reversed(normalize_sort(sort)):
            records.sort(key=lambda r: _sort_key(r.fields.get(field)), reverse=descending)
        return records

    async def select_record(self, table_name: str, record_id: str) -> TableRecord | None:
        table_id = await self._resolve_table_id(table_name)
        stmt = select(table_records_table).where(
            table_records_table.c.id == record_id,
            table_records_table.c.table_id == table_id,
        )
        row = await self._fetch_one_with_logging("select_record", stmt)
        return _row_to_record(row, table_name) if row else None

    async def create_record(
        self, table_name: str, fields: Mapping[str, Any] | None = None
    ) -> TableRecord:
        table_id = await self._resolve_table_id(table_name)
        record_id = new_id()
        now = utcnow()
        await self._execute_with_logging(
            "create_record",
            insert(table_records_table).values(
                id=record_id,
                table_id=table_id,
                data=dict(fields or {}),
                created_at=now,
                updated_at=now,
            ),
        )
        record = await self.select_record(table_name, record_id)
        if record is None:
            raise RuntimeError(f"Record {record_id} vanished after insert")
        return record

    async def update_record(
        self, table_name: str, record_id: str, fields: Mapping[str, Any]
    ) -> TableRecord:
        """Shallow-merge ``fields`` into the record's existing data."""
        existing = await self.select_record(table_name, record_id)
        if existing is None:
            raise NotFoundError(
                f'Record "{record_id}" not found in table "{table_name}"'
            )
        merged = {**existing.fields, **dict(fields)}
        await self._execute_with_logging(
            "update_record",
            update(table_records_table)
            .where(table_records_table.c.id == record_id)
            .values(data=merged, updated_at=utcnow()),
        )
        record = await self.select_record(table_name, record_id)
        if record is None:
            raise NotFoundError(
                f'Record "{record_id}" not found in table "{table_name}"'
            )
        return record

    async def delete_record(self, table_name: str, record_id: str) -> None:
        table_id = await self._resolve_table_id(table_name)
        result = await self._execute_with_logging(
            "delete_record",
            delete(table_records_table).where(
                table_records_table.c.id == record_id,
                table_records_table.c.table_id == table_id,
            ),
        )
        if result.rowcount == 0:
            raise NotFoundError(
                f'Record "{record_id}" not found in table "{table_name}"'
            )
