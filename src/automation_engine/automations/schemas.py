"""
Input models for creating and updating automations and their actions.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from automation_engine.actions.types import ActionType
from automation_engine.storage.automations import TriggerType


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ActionCreate(_Input):
    type: ActionType
    params: dict[str, Any] = Field(default_factory=dict)
    order: int = 0
    condition: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("condition", "conditions")
    )


class ActionUpdate(_Input):
    type: ActionType | None = None
    params: dict[str, Any] | None = None
    order: int | None = None
    condition: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("condition", "conditions")
    )


class ActionOrder(_Input):
    action_id: str = Field(validation_alias=AliasChoices("action_id", "actionId"))
    order: int


class TriggerUpdate(_Input):
    trigger_type: TriggerType | None = Field(
        default=None, validation_alias=AliasChoices("trigger_type", "triggerType")
    )
    trigger_config: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("trigger_config", "triggerConfig")
    )
    trigger_label: str | None = Field(
        default=None, validation_alias=AliasChoices("trigger_label", "triggerLabel")
    )
    trigger_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("trigger_description", "triggerDescription"),
    )
    condition: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("condition", "conditions")
    )


class AutomationUpdate(TriggerUpdate):
    name: str | None = None
    description: str | None = None
    table_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("table_name", "tableIdOrName", "tableName"),
    )
    enabled: bool | None = None
    # Replaces the whole action set when given
    actions: list[ActionCreate] | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("name must not be blank")
        return v


class AutomationCreate(_Input):
    name: str = Field(min_length=1)
    description: str | None = None
    trigger_type: TriggerType = Field(
        validation_alias=AliasChoices("trigger_type", "triggerType")
    )
    trigger_config: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("trigger_config", "triggerConfig"),
    )
    trigger_label: str | None = Field(
        default=None, validation_alias=AliasChoices("trigger_label", "triggerLabel")
    )
    trigger_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("trigger_description", "triggerDescription"),
    )
    table_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("table_name", "tableIdOrName", "tableName"),
    )
    condition: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("condition", "conditions")
    )
    enabled: bool = True
    created_by: str | None = Field(
        default=None, validation_alias=AliasChoices("created_by", "createdBy")
    )
    actions: list[ActionCreate] = Field(default_factory=list)
