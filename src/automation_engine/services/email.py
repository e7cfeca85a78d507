"""SMTP email collaborator built on aiosmtplib."""

import logging
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

import aiosmtplib

from automation_engine.errors import ActionExecutionError

logger = logging.getLogger(__name__)


class SmtpEmailTransport:
    """Sends one plain-text email per call."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_address: str = "no-reply@example.com",
        use_tls: bool = False,
        start_tls: bool | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_address = from_address
        self._use_tls = use_tls
        self._start_tls = start_tls
        self._timeout = timeout_seconds

    async def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        from_address: str | None = None,
    ) -> dict[str, Any]:
        msg = EmailMessage()
        msg["From"] = from_address or self._from_address
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        message_id = make_msgid()
        msg["Message-ID"] = message_id
        msg.set_content(body)

        try:
            errors, response = await aiosmtplib.send(
                msg,
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                use_tls=self._use_tls,
                start_tls=self._start_tls,
                timeout=self._timeout,
            )
        except aiosmtplib.SMTPException as e:
            raise ActionExecutionError(f"Failed to send email: {e}") from e

        accepted = [addr for addr in to if addr not in errors]
        if not accepted:
            raise ActionExecutionError(f"All recipients were refused: {sorted(errors)}")
        logger.info(f"Sent email {message_id} to {len(accepted)} recipient(s): {response}")
        return {"messageId": message_id, "accepted": accepted}
