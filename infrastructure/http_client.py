"""Shared async HTTP client for outbound provider calls."""

from typing import Any, Optional

import httpx


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient.

    Each external provider gets its own instance so its timeout and default
    headers stay independent.
    """

    def __init__(
        self, timeout: float = 5.0, headers: Optional[dict[str, str]] = None
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)

    @property
    def timeout(self) -> httpx.Timeout:
        return self._client.timeout

    async def post_json(self, url: str, payload: dict, **kwargs: Any) -> httpx.Response:
        return await self._client.post(url, json=payload, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
