"""Pydantic models for storage layer data structures."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CRON = "0 * * * *"


class Automation(BaseModel):
    """A named rule binding a trigger and condition to an ordered action pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    trigger_type: str
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    trigger_label: str | None = None
    trigger_description: str | None = None
    table_name: str | None = None
    condition: dict[str, Any] | None = None
    enabled: bool = True
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    def cron_expression(self, default: str = DEFAULT_CRON) -> str:
        """The configured cron expression, or ``default`` when none is set."""
        cron = (self.trigger_config or {}).get("cron")
        return cron or default


class Action(BaseModel):
    """One typed step in an automation's pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    automation_id: str
    order: int = 0
    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    condition: dict[str, Any] | None = None
    seq: int = 0
    created_at: datetime


class ExecutionLog(BaseModel):
    """One end-to-end run of an automation."""

    model_config = ConfigDict(frozen=True)

    id: str
    automation_id: str
    event_data: Any = None
    status: str
    result: Any = None
    error: str | None = None
    is_test: bool = False
    executed_at: datetime
    finished_at: datetime | None = None


class ActionExecutionLog(BaseModel):
    """The per-action record of one run's attempt at that action."""

    model_config = ConfigDict(frozen=True)

    id: str
    execution_id: str
    action_id: str
    status: str
    result: Any = None
    error: str | None = None
    console_output: list[str] = Field(default_factory=list)
    seq: int = 0
    created_at: datetime


class TableRecord(BaseModel):
    """A record in one of the logical tables."""

    model_config = ConfigDict(frozen=True)

    id: str
    table_name: str
    fields: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def to_script_dict(self) -> dict[str, Any]:
        """Shape exposed to scripts and record actions."""
        return {"id": self.id, "fields": dict(self.fields)}


class ExecutionLogDetail(ExecutionLog):
    """A run log together with its step logs in write order."""

    steps: list[ActionExecutionLog] = Field(default_factory=list)
