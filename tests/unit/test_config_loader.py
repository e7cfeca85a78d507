"""
Tests for layered configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from automation_engine.config_loader import (
    EnvVarMapping,
    apply_env_var_overrides,
    load_config,
    parse_env_value,
    set_nested_value,
)
from automation_engine.config_sources import deep_merge_dicts


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DATABASE_URL",
        "LOG_LEVEL",
        "SMTP_HOST",
        "SMTP_PORT",
        "SCRIPT_TIMEOUT_SECONDS",
        "SCHEDULER_TIMEZONE",
        "EXCLUSIVE_RUNS",
        "DEFAULT_CRON",
    ):
        monkeypatch.delenv(name, raising=False)


class TestHelpers:
    def test_set_nested_value_creates_intermediate_dicts(self) -> None:
        data: dict = {}
        set_nested_value(data, "smtp.host", "mail.example.com")
        assert data == {"smtp": {"host": "mail.example.com"}}

    def test_parse_env_value(self) -> None:
        assert parse_env_value("42", int) == 42
        assert parse_env_value("2.5", float) == 2.5
        assert parse_env_value("yes", bool) is True
        assert parse_env_value("off", bool) is False
        with pytest.raises(ValueError):
            parse_env_value("many", int)

    def test_invalid_override_keeps_previous_value(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SMTP_PORT", "not-a-port")
        data = {"smtp": {"port": 587}}
        apply_env_var_overrides(data, [EnvVarMapping("SMTP_PORT", "smtp.port", int)])
        assert data["smtp"]["port"] == 587

    def test_deep_merge_does_not_mutate_inputs(self) -> None:
        base = {"smtp": {"host": None, "port": 587}}
        merged = deep_merge_dicts(base, {"smtp": {"host": "mail"}})
        assert merged == {"smtp": {"host": "mail", "port": 587}}
        assert base["smtp"]["host"] is None


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "missing.yaml"), load_dotenv_file=False)
        assert config.scripting.max_execution_time == 30.0
        assert config.scheduler.default_cron == "0 * * * *"
        assert config.runner.exclusive_runs is False
        assert config.smtp.host is None

    def test_yaml_then_env_priority(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "log_level: debug\n"
            "smtp:\n"
            "  host: yaml.example.com\n"
            "  port: 2525\n"
            "scripting:\n"
            "  max_execution_time: 5\n"
        )
        monkeypatch.setenv("SMTP_HOST", "env.example.com")
        monkeypatch.setenv("EXCLUSIVE_RUNS", "true")

        config = load_config(str(config_file), load_dotenv_file=False)

        assert config.log_level == "DEBUG"
        assert config.smtp.host == "env.example.com"
        assert config.smtp.port == 2525
        assert config.scripting.max_execution_time == 5.0
        assert config.runner.exclusive_runs is True

    def test_yaml_expands_env_references(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_SMTP_PASSWORD", "s3cret")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("smtp:\n  password: ${TEST_SMTP_PASSWORD}\n")

        config = load_config(str(config_file), load_dotenv_file=False)
        assert config.smtp.password == "s3cret"

    def test_invalid_timezone_falls_back_to_utc(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SCHEDULER_TIMEZONE", "Mars/Olympus_Mons")
        config = load_config(str(tmp_path / "missing.yaml"), load_dotenv_file=False)
        assert config.scheduler.timezone == "UTC"

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("scripting:\n  max_cpu: 3\n")
        with pytest.raises(ValidationError):
            load_config(str(config_file), load_dotenv_file=False)
