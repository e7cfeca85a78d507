"""HTTP collaborator built on httpx."""

import logging
from typing import Any

import httpx

from automation_engine.errors import ActionExecutionError

logger = logging.getLogger(__name__)


class HttpxClient:
    """Issues single outbound requests through a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def request(
        self,
        method: str,
        url: str,
        body: Any = None,  # noqa: ANN401
        headers: dict[str, str] | None = None,
    ) -> Any:  # noqa: ANN401
        method = (method or "GET").upper()
        kwargs: dict[str, Any] = {"headers": headers or None}
        if body is not None and method not in {"GET", "HEAD"}:
            if isinstance(body, (str, bytes)):
                kwargs["content"] = body
            else:
                kwargs["json"] = body

        logger.debug(f"Outbound {method} {url}")
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ActionExecutionError(
                f"HTTP {e.response.status_code} from {method} {url}"
            ) from e
        except httpx.HTTPError as e:
            raise ActionExecutionError(f"HTTP request to {url} failed: {e}") from e

        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                logger.warning(f"Invalid JSON body from {url}, returning text")
        return response.text

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
