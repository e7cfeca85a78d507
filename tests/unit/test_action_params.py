"""
Tests for action parameter validation and template rendering.
"""

import pytest

from automation_engine.actions.params import (
    PARAMS_MODELS,
    CallApiParams,
    SendEmailParams,
    SendNotificationParams,
    UpdateRecordParams,
    parse_action_type,
    parse_params,
)
from automation_engine.actions.templating import render_template
from automation_engine.actions.types import ActionType
from automation_engine.errors import ValidationError


class TestParseParams:
    def test_every_action_type_has_a_params_model(self) -> None:
        assert set(PARAMS_MODELS) == set(ActionType)

    def test_unknown_action_type(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_action_type("sendFax")
        assert "sendFax" in str(exc_info.value)

    def test_call_api_defaults(self) -> None:
        params = parse_params(ActionType.CALL_API, {"url": "https://example.com"})
        assert isinstance(params, CallApiParams)
        assert params.method == "POST"
        assert params.payload == {}

        params = parse_params(
            ActionType.CALL_API, {"url": "https://example.com", "method": "put"}
        )
        assert params.method == "PUT"

    def test_call_api_requires_url(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_params(ActionType.CALL_API, {"method": "GET"})
        assert "callAPI" in str(exc_info.value)
        assert "url" in str(exc_info.value)

    def test_run_script_rejects_blank_script(self) -> None:
        with pytest.raises(ValidationError):
            parse_params(ActionType.RUN_SCRIPT, {"script": "   "})

    def test_send_email_splits_recipients(self) -> None:
        params = parse_params(
            ActionType.SEND_EMAIL,
            {"to": "a@example.com, b@example.com", "subject": "s", "from": "me@x.org"},
        )
        assert isinstance(params, SendEmailParams)
        assert params.to == ["a@example.com", "b@example.com"]
        assert params.from_address == "me@x.org"

    def test_send_email_requires_to(self) -> None:
        with pytest.raises(ValidationError):
            parse_params(ActionType.SEND_EMAIL, {"subject": "s", "body": "b"})

    def test_notification_message_defaults(self) -> None:
        params = parse_params(ActionType.SEND_NOTIFICATION, {"message": ""})
        assert isinstance(params, SendNotificationParams)
        assert params.message == "No message"

    def test_record_params_accept_camel_case(self) -> None:
        params = parse_params(
            ActionType.UPDATE_RECORD,
            {"tableName": "tasks", "recordId": "r1", "fields": {"done": True}},
        )
        assert isinstance(params, UpdateRecordParams)
        assert params.table_name == "tasks"
        assert params.record_id == "r1"

    def test_delete_record_requires_record_id(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_params(ActionType.DELETE_RECORD, {"tableName": "tasks"})
        assert "record" in str(exc_info.value).lower()


class TestRenderTemplate:
    def test_substitutes_context_values(self) -> None:
        ctx = {"record": {"name": "Ada"}, "event_data": {"reason": "cron"}}
        assert render_template("Hi {{ record.name }} ({{ event_data.reason }})", ctx) == (
            "Hi Ada (cron)"
        )

    def test_unresolved_placeholders_render_empty(self) -> None:
        assert render_template("[{{ missing }}]", {}) == "[]"
        assert render_template("[{{ record.a.b.c }}]", {"record": None}) == "[]"

    def test_step_results_via_context(self) -> None:
        ctx = {"step_a1_result": {"status": 201}}
        assert render_template('{{ context["step_a1_result"].status }}', ctx) == "201"

    def test_empty_template(self) -> None:
        assert render_template("", {"x": 1}) == ""

    def test_syntax_error_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            render_template("{{ unclosed", {})

    @pytest.mark.parametrize("field", ["items", "keys", "values", "get", "update"])
    def test_fields_named_like_dict_methods(self, field: str) -> None:
        ctx = {"record": {field: 3}}
        assert render_template(f"{field}={{{{ record.{field} }}}}", ctx) == f"{field}=3"

    def test_dict_methods_still_callable_when_not_a_key(self) -> None:
        ctx = {"record": {"a": 1}}
        template = "{% for k, v in record.items() %}{{ k }}{{ v }}{% endfor %}"
        assert render_template(template, ctx) == "a1"
