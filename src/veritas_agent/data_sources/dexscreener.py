"""
DexScreener API client.

Reference: https://docs.dexscreener.com/api/reference

Public endpoints, no API key required.  Pair dicts are returned raw; the
market collector turns them into snapshots.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..circuit_breaker import CircuitBreaker, CircuitOpenError
from ._retry import async_http_get

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 2
_BACKOFF_BASE = 0.5  # seconds


class DexScreenerClient:
    """Async wrapper around the DexScreener REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 15,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._cb = circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def get_token_pairs(self, mint: str) -> Optional[list[dict[str, Any]]]:
        """Return all Solana pairs for *mint*.

        ``[]`` means DexScreener knows no pair; ``None`` means the request
        failed.
        """
        url = f"{self._base_url}/latest/dex/tokens/{mint}"
        data = await self._get(url)
        if data is None:
            return None
        pairs = data.get("pairs") or []
        return [p for p in pairs if p.get("chainId", "solana") == "solana"]

    async def _get(self, url: str) -> Optional[dict[str, Any]]:
        """GET with retry + exponential backoff, guarded by circuit breaker."""
        client = await self._get_client()

        async def _do() -> dict[str, Any]:
            result = await async_http_get(
                client, url,
                max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
                label="DexScreener",
            )
            if result is None:
                raise httpx.RequestError("DexScreener: all retries exhausted")
            return result

        try:
            if self._cb is not None:
                return await self._cb.call(_do)
            return await _do()
        except CircuitOpenError:
            logger.warning("DexScreener circuit OPEN – fast-failing %s", url)
            return None
        except httpx.HTTPError:
            return None
