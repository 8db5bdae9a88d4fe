"""Unit tests for the DexScreener client (mocked transport)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import MINT
from veritas_agent.circuit_breaker import CircuitBreaker
from veritas_agent.data_sources.dexscreener import DexScreenerClient

_SLEEP = "veritas_agent.data_sources._retry.asyncio.sleep"


def _client(handler, **kwargs) -> DexScreenerClient:
    dex = DexScreenerClient(base_url="https://api.dexscreener.com/", timeout=5, **kwargs)
    dex._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return dex


class TestGetTokenPairs:

    @pytest.mark.asyncio
    async def test_filters_other_chains(self, sample_pairs):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            pairs = sample_pairs + [{"chainId": "ethereum", "pairAddress": "0xabc"}]
            return httpx.Response(200, json={"pairs": pairs})

        dex = _client(handler)
        pairs = await dex.get_token_pairs(MINT)
        await dex.close()

        assert seen == [f"https://api.dexscreener.com/latest/dex/tokens/{MINT}"]
        assert [p["pairAddress"] for p in pairs] == ["PAIR_MAIN", "PAIR_SMALL"]

    @pytest.mark.asyncio
    async def test_no_pairs_is_empty_list(self):
        dex = _client(lambda request: httpx.Response(200, json={"pairs": None}))
        assert await dex.get_token_pairs(MINT) == []

    @pytest.mark.asyncio
    async def test_server_error_returns_none(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(503)

        dex = _client(handler)
        with patch(_SLEEP, new_callable=AsyncMock):
            assert await dex.get_token_pairs(MINT) is None
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self, sample_pairs):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(200, json={"pairs": sample_pairs}),
        ])
        dex = _client(lambda request: next(responses))
        with patch(_SLEEP, new_callable=AsyncMock) as sleep:
            pairs = await dex.get_token_pairs(MINT)
        assert len(pairs) == 2
        sleep.assert_awaited_once_with(1.0)


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_failures_open_the_circuit(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(500)

        cb = CircuitBreaker("dex-test", failure_threshold=1, recovery_timeout=60)
        dex = _client(handler, circuit_breaker=cb)
        with patch(_SLEEP, new_callable=AsyncMock):
            assert await dex.get_token_pairs(MINT) is None
            assert await dex.get_token_pairs(MINT) is None

        assert cb.state.value == "open"
        assert cb.rejections == 1
        assert len(calls) == 2  # second lookup never reached the network
