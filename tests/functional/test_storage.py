"""
Tests for the storage repositories against a real SQLite database.
"""

from collections.abc import Callable

import pytest

from automation_engine.errors import NotFoundError, ValidationError
from automation_engine.storage.context import DatabaseContext
from automation_engine.storage.execution_logs import RunStatus
from automation_engine.storage.repositories.records import normalize_sort


class TestAutomationsRepository:
    @pytest.mark.asyncio
    async def test_create_get_update_delete(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            created = await db.automations.create(
                name="Nightly",
                trigger_type="scheduled",
                trigger_config={"cron": "0 2 * * *"},
                condition={"field": "x", "compare": "equals", "value": 1},
            )

        async with db_context_factory() as db:
            fetched = await db.automations.get_by_id(created.id)
        assert fetched is not None
        assert fetched.name == "Nightly"
        assert fetched.enabled is True
        assert fetched.cron_expression() == "0 2 * * *"
        assert fetched.condition == {"field": "x", "compare": "equals", "value": 1}

        async with db_context_factory() as db:
            updated = await db.automations.update(created.id, name="Nightly v2")
        assert updated is not None
        assert updated.name == "Nightly v2"

        async with db_context_factory() as db:
            assert await db.automations.delete(created.id) is True
            assert await db.automations.get_by_id(created.id) is None
            assert await db.automations.update(created.id, name="gone") is None

    @pytest.mark.asyncio
    async def test_list_filters(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            await db.automations.create(name="a", trigger_type="scheduled")
            await db.automations.create(name="b", trigger_type="scheduled", enabled=False)
            await db.automations.create(name="c", trigger_type="create")

        async with db_context_factory() as db:
            scheduled = await db.automations.list_all(trigger_type="scheduled")
            enabled = await db.automations.list_all(
                trigger_type="scheduled", enabled_only=True
            )
            everything = await db.automations.list_all()

        assert {a.name for a in scheduled} == {"a", "b"}
        assert [a.name for a in enabled] == ["a"]
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_cron_defaults_to_hourly(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            automation = await db.automations.create(name="a", trigger_type="scheduled")
        assert automation.cron_expression() == "0 * * * *"


class TestActionsRepository:
    @pytest.mark.asyncio
    async def test_listing_is_ordered_with_stable_ties(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            automation = await db.automations.create(name="a", trigger_type="manual")
            second = await db.actions.add(automation.id, "sendNotification", order=2)
            first_tie = await db.actions.add(automation.id, "sendNotification", order=1)
            second_tie = await db.actions.add(automation.id, "sendNotification", order=1)

        async with db_context_factory() as db:
            actions = await db.actions.list_for_automation(automation.id)

        assert [a.id for a in actions] == [first_tie.id, second_tie.id, second.id]

    @pytest.mark.asyncio
    async def test_update_and_clear_condition(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        condition = {"field": "x", "compare": "equals", "value": 1}
        async with db_context_factory() as db:
            automation = await db.automations.create(name="a", trigger_type="manual")
            action = await db.actions.add(
                automation.id, "sendNotification", condition=condition
            )
            updated = await db.actions.update(
                action.id, params={"message": "hi"}, order=5
            )
            assert updated is not None
            assert updated.condition == condition
            assert updated.order == 5

            cleared = await db.actions.update(action.id, clear_condition=True)
            assert cleared is not None
            assert cleared.condition is None
            assert cleared.params == {"message": "hi"}


class TestExecutionLogsRepository:
    @pytest.mark.asyncio
    async def test_log_lifecycle(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            automation = await db.automations.create(name="a", trigger_type="manual")
            log = await db.execution_logs.create(
                automation.id, event_data={"reason": "manual"}
            )
            assert log.status == RunStatus.SUCCESS.value
            assert log.finished_at is None

            await db.execution_logs.add_step(log.id, "act-1", RunStatus.SUCCESS, result=1)
            await db.execution_logs.add_step(
                log.id,
                "act-2",
                RunStatus.ERROR,
                error="boom",
                console_output=["line 1"],
            )
            final = await db.execution_logs.finalize(
                log.id, RunStatus.ERROR, error="boom"
            )

        assert final is not None
        assert final.status == "error"
        assert final.error == "boom"
        assert final.finished_at is not None

        async with db_context_factory() as db:
            steps = await db.execution_logs.list_steps(log.id)
            logs = await db.execution_logs.list_for_automation(automation.id)

        assert [s.action_id for s in steps] == ["act-1", "act-2"]
        assert steps[1].console_output == ["line 1"]
        assert [entry.id for entry in logs] == [log.id]


class TestRecordsRepository:
    @pytest.mark.asyncio
    async def test_record_crud(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            await db.records.ensure_table("tasks")
            record = await db.records.create_record("tasks", {"title": "a", "n": 1})
            updated = await db.records.update_record("tasks", record.id, {"n": 2})

        assert updated.fields == {"title": "a", "n": 2}

        async with db_context_factory() as db:
            await db.records.delete_record("tasks", record.id)
            assert await db.records.select_record("tasks", record.id) is None
            with pytest.raises(NotFoundError):
                await db.records.delete_record("tasks", record.id)

    @pytest.mark.asyncio
    async def test_unknown_table(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            assert await db.records.table_exists("nope") is False
            with pytest.raises(NotFoundError) as exc_info:
                await db.records.create_record("nope", {})
        assert 'Table "nope" not found' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_records_are_scoped_to_their_table(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            await db.records.ensure_table("tasks")
            await db.records.ensure_table("people")
            task = await db.records.create_record("tasks", {"title": "a"})
            assert await db.records.select_record("people", task.id) is None
            with pytest.raises(NotFoundError):
                await db.records.update_record("people", task.id, {"title": "b"})

    @pytest.mark.asyncio
    async def test_filter_and_sort(
        self, db_context_factory: Callable[[], DatabaseContext]
    ) -> None:
        async with db_context_factory() as db:
            await db.records.ensure_table("tasks")
            for title, priority, status in [
                ("a", 2, "open"),
                ("b", 3, "open"),
                ("c", 1, "done"),
                ("d", None, "open"),
            ]:
                await db.records.create_record(
                    "tasks", {"title": title, "priority": priority, "status": status}
                )

            open_desc = await db.records.select_records(
                "tasks", {"status": "open"}, {"field": "priority", "direction": "desc"}
            )
            all_asc = await db.records.select_records("tasks", None, {"priority": "asc"})

        assert [r.fields["title"] for r in open_desc] == ["b", "a", "d"]
        assert [r.fields["title"] for r in all_asc] == ["d", "c", "a", "b"]

    def test_normalize_sort(self) -> None:
        assert normalize_sort(None) == []
        assert normalize_sort({"field": "a"}) == [("a", False)]
        assert normalize_sort([{"field": "a", "direction": "DESC"}, {"field": "b"}]) == [
            ("a", True),
            ("b", False),
        ]
        with pytest.raises(ValidationError):
            normalize_sort({"field": "a", "direction": "sideways"})
        with pytest.raises(ValidationError):
            normalize_sort("a")
