from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import httpx

from app.core.logging import get_logger

logger = get_logger()

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BaseFetchService:
    """
    Shared HTTP plumbing for the outbound fetchers.

    Either borrows an injected `httpx.AsyncClient` (one per process, owned by the
    briefing service) or lazily opens its own, which `aclose()` then closes.
    Every request carries the configured timeout.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
        user_agent: str = BROWSER_USER_AGENT,
        max_retries: int = 0,
    ) -> None:
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self.max_retries = max(0, max_retries)
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "BaseFetchService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """
        GET `url` and raise for non-2xx.

        Retries `max_retries` times with exponential backoff (1s, 2s, ... capped
        at 10s); the last error is re-raised.
        """
        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)

        attempt = 0
        delay = 1.0
        last_exc: Optional[Exception] = None

        while attempt <= self.max_retries:
            try:
                response = await self.client.get(
                    url,
                    params=params,
                    headers=request_headers,
                    timeout=self.timeout_s,
                    follow_redirects=True,
                )
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                attempt += 1
                if attempt > self.max_retries:
                    break
                logger.debug("http_fetch_retry", url=url, attempt=attempt, error=str(exc))
                await asyncio.sleep(delay)
                delay = min(delay * 2, 10)

        assert last_exc is not None
        raise last_exc
