"""
Defines the interfaces of the outbound collaborators used by the engine.
"""

from typing import Any, Protocol


class HttpClient(Protocol):
    """
    Protocol for performing one outbound HTTP request.
    """

    async def request(
        self,
        method: str,
        url: str,
        body: Any = None,  # noqa: ANN401 # JSON payload of any shape
        headers: dict[str, str] | None = None,
    ) -> Any:  # noqa: ANN401
        """
        Sends the request and returns the decoded response body.

        Returns:
            The JSON-decoded body when the response is JSON, otherwise its text.

        Raises:
            ActionExecutionError: On transport failure or a non-2xx status.
        """
        ...


class EmailTransport(Protocol):
    """
    Protocol for sending one already-rendered email.
    """

    async def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        from_address: str | None = None,
    ) -> dict[str, Any]:
        """
        Sends the message.

        Returns:
            ``{"messageId": ..., "accepted": [...]}``.
        """
        ...


class Notifier(Protocol):
    """
    Protocol for fire-and-forget publishing of engine events to listeners.
    """

    def publish(self, event_type: str, payload: Any) -> None:  # noqa: ANN401
        """Publishes an ``{eventType, payload}`` envelope. Must not block."""
        ...
