"""
Execution of a single automation step.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from automation_engine.actions.params import (
    CallApiParams,
    CreateRecordParams,
    DeleteRecordParams,
    RunScriptParams,
    SendEmailParams,
    SendNotificationParams,
    SendSlackParams,
    UpdateRecordParams,
    parse_action_type,
    parse_params,
)
from automation_engine.actions.templating import render_template
from automation_engine.actions.types import ActionType
from automation_engine.errors import ActionExecutionError
from automation_engine.interfaces import EmailTransport, HttpClient, Notifier
from automation_engine.scripting.apis.tables import TableAPI
from automation_engine.scripting.engine import MontyEngine
from automation_engine.scripting.errors import ScriptError
from automation_engine.services.notifier import AUTOMATION_NOTIFICATION

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    """What a step produced: its result and any console output."""

    result: Any
    console_output: list[str] = field(default_factory=list)


Handler = Callable[[Any, Mapping[str, Any], dict[str, Any]], Awaitable[ActionOutcome]]


class ActionExecutor:
    """
    Dispatches one action to its type's handler.

    Every failure is raised as an ``AutomationError`` subclass:
    ``ValidationError`` for malformed params, ``NotFoundError`` for missing
    tables or records, and ``ActionExecutionError`` for everything that goes
    wrong while doing the work.
    """

    def __init__(
        self,
        script_engine: MontyEngine,
        table_api: TableAPI,
        http_client: HttpClient,
        email_transport: EmailTransport | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.script_engine = script_engine
        self.table_api = table_api
        self.http_client = http_client
        self.email_transport = email_transport
        self.notifier = notifier

        self._handlers: dict[ActionType, Handler] = {
            ActionType.RUN_SCRIPT: self._run_script,
            ActionType.CALL_API: self._call_api,
            ActionType.SEND_NOTIFICATION: self._send_notification,
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.SEND_SLACK: self._send_slack,
            ActionType.UPDATE_RECORD: self._update_record,
            ActionType.CREATE_RECORD: self._create_record,
            ActionType.DELETE_RECORD: self._delete_record,
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for action types: {sorted(missing)}")

    async def execute(
        self,
        action_type: str | ActionType,
        params: dict[str, Any] | None,
        context: Mapping[str, Any],
        input_vars: dict[str, Any] | None = None,
    ) -> ActionOutcome:
        kind = parse_action_type(action_type)
        parsed = parse_params(kind, params)
        return await self._handlers[kind](parsed, context, input_vars or {})

    async def _run_script(
        self,
        params: RunScriptParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        try:
            script_result = await self.script_engine.run(
                params.script,
                context=dict(context),
                input_vars={**input_vars, **params.inputs},
            )
        except ScriptError as e:
            raise ActionExecutionError(str(e), console_output=e.console_output) from e
        return ActionOutcome(
            result=script_result.result,
            console_output=script_result.console_output,
        )

    async def _call_api(
        self,
        params: CallApiParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        body = await self.http_client.request(
            params.method, params.url, body=params.payload, headers=params.headers
        )
        return ActionOutcome(result=body)

    async def _send_notification(
        self,
        params: SendNotificationParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        logger.info(f"[sendNotification] -> {params.message}")
        if self.notifier is not None:
            try:
                self.notifier.publish(
                    AUTOMATION_NOTIFICATION, {"message": params.message}
                )
            except Exception as e:
                # Notifications are best-effort
                logger.warning(f"Failed to publish notification: {e}", exc_info=True)
        return ActionOutcome(
            result={"notificationSent": True, "message": params.message}
        )

    async def _send_email(
        self,
        params: SendEmailParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        if self.email_transport is None:
            raise ActionExecutionError("Email transport is not configured")
        subject = render_template(params.subject, context)
        body = render_template(params.body, context)
        info = await self.email_transport.send_email(
            to=params.to,
            subject=subject,
            body=body,
            from_address=params.from_address,
        )
        return ActionOutcome(result=info)

    async def _send_slack(
        self,
        params: SendSlackParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        text = render_template(params.text, context)
        response = await self.http_client.request(
            "POST", params.webhook_url, body={"text": text}
        )
        return ActionOutcome(result={"ok": True, "response": response})

    async def _update_record(
        self,
        params: UpdateRecordParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        record = await self.table_api.update_record(
            params.table_name, params.record_id, params.fields
        )
        return ActionOutcome(result=record)

    async def _create_record(
        self,
        params: CreateRecordParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        record = await self.table_api.create_record(params.table_name, params.fields)
        return ActionOutcome(result=record)

    async def _delete_record(
        self,
        params: DeleteRecordParams,
        context: Mapping[str, Any],
        input_vars: dict[str, Any],
    ) -> ActionOutcome:
        result = await self.table_api.delete_record(params.table_name, params.record_id)
        return ActionOutcome(result=result)
