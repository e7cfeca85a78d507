"""
Tests for the HTTP, email and broadcast collaborators.
"""

import json
from typing import Any

import aiosmtplib
import httpx
import pytest

from automation_engine.errors import ActionExecutionError
from automation_engine.services.email import SmtpEmailTransport
from automation_engine.services.http_client import HttpxClient
from automation_engine.services.notifier import (
    AUTOMATION_RUN,
    AutomationEventBroadcaster,
)


def make_client(handler: Any) -> HttpxClient:  # noqa: ANN401
    return HttpxClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestHttpxClient:
    @pytest.mark.asyncio
    async def test_json_request_and_response(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 7})

        client = make_client(handler)
        body = await client.request(
            "post", "https://api.example.com/items", body={"name": "x"},
            headers={"X-Token": "t"},
        )

        assert body == {"id": 7}
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"name": "x"}
        assert seen[0].headers["X-Token"] == "t"

    @pytest.mark.asyncio
    async def test_get_sends_no_body_and_returns_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.content == b""
            return httpx.Response(200, text="pong")

        client = make_client(handler)
        assert await client.request("GET", "https://api.example.com/ping", body={"x": 1}) == "pong"

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self) -> None:
        client = make_client(lambda request: httpx.Response(204))
        assert await client.request("DELETE", "https://api.example.com/items/1") is None

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(ActionExecutionError) as exc_info:
            await client.request("POST", "https://api.example.com/hook")
        assert "HTTP 503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(ActionExecutionError) as exc_info:
            await client.request("GET", "https://api.example.com/")
        assert "failed" in str(exc_info.value)


class TestSmtpEmailTransport:
    @pytest.mark.asyncio
    async def test_send_builds_message(self, monkeypatch: pytest.MonkeyPatch) -> None:
        sent: list[Any] = []

        async def fake_send(message: Any, **kwargs: Any) -> tuple[dict, str]:  # noqa: ANN401
            sent.append((message, kwargs))
            return {"bad@example.com": (550, "no such user")}, "OK"

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        transport = SmtpEmailTransport(host="smtp.example.com", from_address="bot@example.com")

        info = await transport.send_email(
            ["ok@example.com", "bad@example.com"], "Subject", "Body text"
        )

        assert info["accepted"] == ["ok@example.com"]
        assert info["messageId"]
        message, kwargs = sent[0]
        assert message["From"] == "bot@example.com"
        assert message["Subject"] == "Subject"
        assert kwargs["hostname"] == "smtp.example.com"

    @pytest.mark.asyncio
    async def test_all_recipients_refused(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_send(message: Any, **kwargs: Any) -> tuple[dict, str]:  # noqa: ANN401
            return {"a@example.com": (550, "no")}, "OK"

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        transport = SmtpEmailTransport(host="smtp.example.com")
        with pytest.raises(ActionExecutionError):
            await transport.send_email(["a@example.com"], "s", "b")

    @pytest.mark.asyncio
    async def test_smtp_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_send(message: Any, **kwargs: Any) -> tuple[dict, str]:  # noqa: ANN401
            raise aiosmtplib.SMTPConnectError("unreachable")

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        transport = SmtpEmailTransport(host="smtp.example.com")
        with pytest.raises(ActionExecutionError) as exc_info:
            await transport.send_email(["a@example.com"], "s", "b")
        assert "Failed to send email" in str(exc_info.value)


class TestAutomationEventBroadcaster:
    @pytest.mark.asyncio
    async def test_publish_reaches_listeners(self) -> None:
        broadcaster = AutomationEventBroadcaster()
        queue = await broadcaster.register()
        assert broadcaster.get_listener_count() == 1

        broadcaster.publish(AUTOMATION_RUN, {"id": "log-1"})
        assert queue.get_nowait() == {"eventType": AUTOMATION_RUN, "payload": {"id": "log-1"}}

        await broadcaster.unregister(queue)
        assert broadcaster.get_listener_count() == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self) -> None:
        broadcaster = AutomationEventBroadcaster()
        queue = await broadcaster.register(max_queue_size=1)
        broadcaster.publish(AUTOMATION_RUN, {"n": 1})
        broadcaster.publish(AUTOMATION_RUN, {"n": 2})
        assert queue.qsize() == 1
        assert queue.get_nowait()["payload"] == {"n": 1}
