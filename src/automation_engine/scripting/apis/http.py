"""
HTTP API for scripts: a single ``fetch`` function.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from automation_engine.interfaces import HttpClient


def create_fetch_function(
    http_client: HttpClient,
) -> Callable[..., Awaitable[Any]]:
    """Build the ``fetch(url, method="GET", body=None, headers=None)`` function."""

    async def fetch(
        url: str,
        method: str = "GET",
        body: Any = None,  # noqa: ANN401
        headers: dict[str, str] | None = None,
    ) -> Any:  # noqa: ANN401
        if not isinstance(url, str) or not url:
            raise ValueError("fetch() requires a non-empty url")
        return await http_client.request(method, url, body=body, headers=headers)

    return fetch
