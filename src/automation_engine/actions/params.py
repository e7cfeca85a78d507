"""
Typed parameter models, one per action type.

Stored params are validated into these models once per attempted step.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from automation_engine.actions.types import ActionType
from automation_engine.errors import ValidationError


class _ActionParams(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class RunScriptParams(_ActionParams):
    script: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)

    @field_validator("script")
    @classmethod
    def script_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("script must not be blank")
        return v


class CallApiParams(_ActionParams):
    url: str = Field(min_length=1)
    method: str = "POST"
    payload: Any = Field(default_factory=dict)
    headers: dict[str, str] | None = None

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return (v or "POST").upper()


class SendNotificationParams(_ActionParams):
    message: str = "No message"

    @field_validator("message", mode="before")
    @classmethod
    def default_empty_message(cls, v: Any) -> Any:  # noqa: ANN401
        return v or "No message"


class SendEmailParams(_ActionParams):
    to: list[str] = Field(min_length=1)
    subject: str = ""
    body: str = ""
    from_address: str | None = Field(
        default=None, validation_alias=AliasChoices("from_address", "from")
    )

    @field_validator("to", mode="before")
    @classmethod
    def split_recipients(cls, v: Any) -> Any:  # noqa: ANN401
        if isinstance(v, str):
            return [addr.strip() for addr in v.split(",") if addr.strip()]
        return v


class SendSlackParams(_ActionParams):
    webhook_url: str = Field(
        min_length=1, validation_alias=AliasChoices("webhookUrl", "webhook_url")
    )
    text: str = ""


class CreateRecordParams(_ActionParams):
    table_name: str = Field(
        min_length=1, validation_alias=AliasChoices("tableName", "table_name")
    )
    fields: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("fields", "data")
    )


class UpdateRecordParams(_ActionParams):
    table_name: str = Field(
        min_length=1, validation_alias=AliasChoices("tableName", "table_name")
    )
    record_id: str = Field(
        min_length=1, validation_alias=AliasChoices("recordId", "record_id")
    )
    fields: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("fields", "data")
    )


class DeleteRecordParams(_ActionParams):
    table_name: str = Field(
        min_length=1, validation_alias=AliasChoices("tableName", "table_name")
    )
    record_id: str = Field(
        min_length=1, validation_alias=AliasChoices("recordId", "record_id")
    )


PARAMS_MODELS: dict[ActionType, type[_ActionParams]] = {
    ActionType.RUN_SCRIPT: RunScriptParams,
    ActionType.CALL_API: CallApiParams,
    ActionType.SEND_NOTIFICATION: SendNotificationParams,
    ActionType.SEND_EMAIL: SendEmailParams,
    ActionType.SEND_SLACK: SendSlackParams,
    ActionType.UPDATE_RECORD: UpdateRecordParams,
    ActionType.CREATE_RECORD: CreateRecordParams,
    ActionType.DELETE_RECORD: DeleteRecordParams,
}


def parse_action_type(action_type: str | ActionType) -> ActionType:
    try:
        return ActionType(action_type)
    except ValueError as e:
        raise ValidationError(f"Unknown action type: {action_type}") from e


def parse_params(action_type: ActionType, params: dict[str, Any] | None) -> _ActionParams:
    """
    Validate raw params for an action type.

    Raises:
        ValidationError: If the params are malformed for the type.
    """
    model = PARAMS_MODELS[action_type]
    try:
        return model.model_validate(params or {})
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(
            f"Invalid params for {action_type.value}: {problems}"
        ) from e
