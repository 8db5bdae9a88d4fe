"""
Solana RPC client for the Veritas investigator.

Uses the standard JSON-RPC interface over ``httpx`` with retry + exponential
backoff.  Every method returns ``None`` (or an empty list) when the endpoint
cannot be reached; callers decide whether that is fatal.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ._retry import async_http_post_json
from ..circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.5  # seconds


class SolanaRpcClient:
    """Async Solana JSON-RPC client."""

    def __init__(
        self,
        endpoint: str,
        timeout: int = 15,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0
        self._cb = circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_account_info(
        self, address: str, *, circuit_protect: bool = True
    ) -> Optional[dict[str, Any]]:
        """Return the ``getAccountInfo`` envelope (``{"context", "value"}``).

        ``value`` is ``None`` when the account does not exist; the method
        itself returns ``None`` only when the RPC could not be reached.
        """
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": "confirmed"}],
            circuit_protect=circuit_protect,
        )
        return result if isinstance(result, dict) else None

    async def get_account_owner(self, token_account: str) -> Optional[str]:
        """Return the wallet that owns a parsed SPL token account."""
        envelope = await self.get_account_info(token_account, circuit_protect=False)
        value = (envelope or {}).get("value") or {}
        data = value.get("data")
        if not isinstance(data, dict):
            return None
        info = (data.get("parsed") or {}).get("info") or {}
        owner = info.get("owner")
        return owner if isinstance(owner, str) and owner else None

    async def get_token_largest_accounts(self, mint: str) -> Optional[list[dict[str, Any]]]:
        """Return the largest token accounts for *mint* (at most 20)."""
        result = await self._call(
            "getTokenLargestAccounts", [mint, {"commitment": "confirmed"}]
        )
        if not isinstance(result, dict):
            return None
        value = result.get("value")
        return value if isinstance(value, list) else []

    async def get_signatures_for_address(
        self, address: str, limit: int = 100
    ) -> Optional[list[dict[str, Any]]]:
        """Return recent signatures for *address*, newest first."""
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": "confirmed"}],
            circuit_protect=False,
        )
        return result if isinstance(result, list) else None

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        """Fetch a transaction with jsonParsed instructions.

        ``None`` when the node no longer has it (pruned) or the call failed.
        """
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": "confirmed",
                },
            ],
            circuit_protect=False,
        )
        return result if isinstance(result, dict) else None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        params: list[Any] | dict,
        *,
        circuit_protect: bool = True,
    ) -> Any:
        """JSON-RPC call with retry + exponential backoff, guarded by circuit breaker.

        Parameters
        ----------
        circuit_protect:
            When *False* the call bypasses the shared circuit breaker entirely.
            Best-effort methods (owner lookups, creator history) pass False so
            their failures cannot block the mandatory ``getAccountInfo`` read.

        A ``null`` ``result`` is a valid answer (pruned transaction, unknown
        account) and is returned as ``None`` without counting as a failure.
        """
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        client = await self._get_client()

        async def _do() -> Any:
            body = await async_http_post_json(
                client, self._endpoint, json_payload=payload,
                max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
                label=f"Solana RPC ({method})", full_body=True,
            )
            if not isinstance(body, dict):
                raise httpx.RequestError(f"Solana RPC {method}: all retries exhausted")
            return body.get("result")

        if self._cb is not None and circuit_protect:
            try:
                return await self._cb.call(_do)
            except CircuitOpenError:
                logger.warning("Solana RPC circuit OPEN – fast-failing %s", method)
                return None
            except httpx.HTTPError:
                return None
        # Either circuit_protect=False (bypass CB) or no CB configured: call directly.
        try:
            return await _do()
        except httpx.HTTPError:
            return None
