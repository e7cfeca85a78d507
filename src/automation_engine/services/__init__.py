"""Outbound collaborators: HTTP, email and event broadcasting."""

from automation_engine.services.email import SmtpEmailTransport
from automation_engine.services.http_client import HttpxClient
from automation_engine.services.notifier import AutomationEventBroadcaster

__all__ = ["AutomationEventBroadcaster", "HttpxClient", "SmtpEmailTransport"]
