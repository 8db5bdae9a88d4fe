"""
RugCheck contract-audit client.

``GET /v1/tokens/{mint}/report`` – an optional ``RUGCHECK_API_KEY`` is sent
as a bearer token.  The raw ``HttpResult`` is returned so the audit collector
can tell "not indexed" (404), "rate limited" (429) and real failures apart.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..circuit_breaker import CircuitBreaker
from ._retry import HttpResult, async_http_fetch

logger = logging.getLogger(__name__)


class RugCheckClient:
    """Async wrapper around the RugCheck token report endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 5.0,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._cb = circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def get_report(self, mint: str, *, timeout: Optional[float] = None) -> HttpResult:
        if self._cb is not None and not self._cb.allow_request():
            logger.warning("RugCheck circuit OPEN – fast-failing %s", mint[:12])
            return HttpResult(status=0, error="circuit open")

        client = await self._get_client()
        result = await async_http_fetch(
            client,
            f"{self._base_url}/v1/tokens/{mint}/report",
            timeout=timeout or self._timeout,
            label="RugCheck",
        )
        if self._cb is not None:
            # 404 and 429 are answers, not outages
            if result.status == 0 or result.status >= 500:
                self._cb.record_failure()
            else:
                self._cb.record_success()
        return result
