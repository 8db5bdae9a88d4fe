"""Tests for the RugCheck audit client."""

from __future__ import annotations

import httpx
import pytest

from conftest import MINT
from veritas_agent.circuit_breaker import CircuitBreaker
from veritas_agent.data_sources.rugcheck import RugCheckClient


def _client(handler, **kwargs) -> RugCheckClient:
    client = RugCheckClient("https://api.rugcheck.xyz", **kwargs)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestGetReport:

    @pytest.mark.asyncio
    async def test_report(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"score": 120, "risks": []})

        result = await _client(handler).get_report(MINT)
        assert result.ok
        assert result.data["score"] == 120
        assert seen == [f"/v1/tokens/{MINT}/report"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 429])
    async def test_answers_do_not_trip_breaker(self, status):
        cb = CircuitBreaker("rugcheck-test", failure_threshold=1)
        result = await _client(lambda r: httpx.Response(status), circuit_breaker=cb).get_report(MINT)
        assert result.status == status
        assert cb.state.value == "closed"

    @pytest.mark.asyncio
    async def test_server_error_trips_breaker(self):
        cb = CircuitBreaker("rugcheck-test", failure_threshold=1, recovery_timeout=60)
        client = _client(lambda r: httpx.Response(500), circuit_breaker=cb)
        assert (await client.get_report(MINT)).status == 500
        blocked = await client.get_report(MINT)
        assert blocked.status == 0
        assert blocked.error == "circuit open"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        result = await _client(handler).get_report(MINT)
        assert result.status == 0
        assert not result.ok


class TestApiKey:

    @pytest.mark.asyncio
    async def test_bearer_header(self):
        client = RugCheckClient("https://api.rugcheck.xyz", api_key="k-123")
        http = await client._get_client()
        try:
            assert http.headers["Authorization"] == "Bearer k-123"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_no_key_no_header(self):
        client = RugCheckClient("https://api.rugcheck.xyz")
        http = await client._get_client()
        try:
            assert "Authorization" not in http.headers
        finally:
            await client.close()
