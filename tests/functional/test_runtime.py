"""
End-to-end tests for process wiring and the command line entry point.
"""

import asyncio
import json
from pathlib import Path

import pytest

from automation_engine.__main__ import main
from automation_engine.config_models import AppConfig
from automation_engine.runtime import AutomationRuntime
from tests.mocks.recording import RecordingHttpClient


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'automations.db'}"


class TestAutomationRuntime:
    @pytest.mark.asyncio
    async def test_start_reconciles_and_stop_shuts_down(self, database_url: str) -> None:
        http_client = RecordingHttpClient(response={"ok": True})
        runtime = AutomationRuntime(
            AppConfig(database_url=database_url), http_client=http_client
        )
        await runtime.init_storage()
        automation = await runtime.service.create_automation({
            "name": "Ping",
            "triggerType": "scheduled",
            "actions": [
                {
                    "type": "runScript",
                    "params": {"script": 'return fetch("https://ping.example.com")'},
                }
            ],
        })

        await runtime.start()
        try:
            assert runtime.scheduler.running
            assert runtime.scheduler.has(automation.id)

            log = await runtime.service.run_automation(automation.id, {"reason": "manual"})
            assert log is not None
            assert log.status == "success", log.error
            assert http_client.requests[0].url == "https://ping.example.com"
        finally:
            await runtime.stop()

        assert not runtime.scheduler.running

    def test_email_transport_only_with_smtp_host(self, database_url: str) -> None:
        without = AutomationRuntime(AppConfig(database_url=database_url))
        assert without.email_transport is None

        config = AppConfig.model_validate(
            {"database_url": database_url, "smtp": {"host": "smtp.example.com"}}
        )
        assert AutomationRuntime(config).email_transport is not None


class TestCommandLine:
    def test_run_unknown_automation_fails(self, tmp_path: Path, database_url: str) -> None:
        exit_code = main([
            "--config",
            str(tmp_path / "missing.yaml"),
            "--database-url",
            database_url,
            "run",
            "does-not-exist",
        ])
        assert exit_code == 1

    def test_run_rejects_bad_event_data(self, tmp_path: Path, database_url: str) -> None:
        exit_code = main([
            "--config",
            str(tmp_path / "missing.yaml"),
            "--database-url",
            database_url,
            "run",
            "some-id",
            "--event-data",
            "{not json",
        ])
        assert exit_code == 2

    def test_run_prints_log(
        self,
        tmp_path: Path,
        database_url: str,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        async def seed() -> str:
            runtime = AutomationRuntime(AppConfig(database_url=database_url))
            await runtime.init_storage()
            automation = await runtime.service.create_automation({
                "name": "Echo",
                "triggerType": "manual",
                "actions": [
                    {"type": "runScript", "params": {"script": "return context['event_data']['n'] * 2"}}
                ],
            })
            await runtime.stop()
            return automation.id

        automation_id = asyncio.run(seed())
        exit_code = main([
            "--config",
            str(tmp_path / "missing.yaml"),
            "--database-url",
            database_url,
            "run",
            automation_id,
            "--event-data",
            '{"n": 21}',
        ])

        assert exit_code == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["status"] == "success"
        assert any(value == 42 for value in printed["result"].values())

    def test_create_table_command(
        self,
        tmp_path: Path,
        database_url: str,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        exit_code = main([
            "--config",
            str(tmp_path / "missing.yaml"),
            "--database-url",
            database_url,
            "create-table",
            "tasks",
        ])

        assert exit_code == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["table"] == "tasks"

        async def table_exists() -> bool:
            runtime = AutomationRuntime(AppConfig(database_url=database_url))
            try:
                async with runtime.get_db_context() as db:
                    return await db.records.table_exists("tasks")
            finally:
                await runtime.stop()

        assert asyncio.run(table_exists())
