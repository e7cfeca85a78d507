"""Pydantic models for application configuration.

Configuration priority (lowest to highest):
1. Code defaults (defined in model Field defaults)
2. config.yaml file
3. Environment variables
4. CLI arguments
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScriptingConfig(BaseModel):
    """Limits for the script sandbox."""

    model_config = ConfigDict(extra="forbid")

    max_execution_time: float = Field(default=30.0, gt=0)
    max_memory_bytes: int = Field(default=256 * 1024 * 1024, gt=0)
    max_recursion_depth: int = Field(default=100, gt=0)
    enable_print: bool = True


class HttpConfig(BaseModel):
    """Outbound HTTP settings for callAPI, sendSlack and script fetch()."""

    model_config = ConfigDict(extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0)


class SmtpConfig(BaseModel):
    """SMTP settings for sendEmail. Email is disabled when host is unset."""

    model_config = ConfigDict(extra="forbid")

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: str | None = None
    from_address: str = "no-reply@example.com"
    use_tls: bool = False
    start_tls: bool | None = None
    timeout_seconds: float = 30.0


class SchedulerConfig(BaseModel):
    """Cron timer settings."""

    model_config = ConfigDict(extra="forbid")

    default_cron: str = "0 * * * *"
    timezone: str = "UTC"
    shutdown_grace_seconds: float = 5.0


class RunnerConfig(BaseModel):
    """Run pipeline settings."""

    model_config = ConfigDict(extra="forbid")

    # Serialize concurrent runs of the same automation
    exclusive_runs: bool = False


class AppConfig(BaseModel):
    """Main application configuration."""

    model_config = ConfigDict(extra="forbid")

    database_url: str = "sqlite+aiosqlite:///automations.db"
    log_level: str = "INFO"

    scripting: ScriptingConfig = Field(default_factory=ScriptingConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
