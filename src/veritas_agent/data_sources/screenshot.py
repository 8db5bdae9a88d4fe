"""
Website screenshot providers.

Two interchangeable providers share one ``capture(url)`` interface:

- ``ScreenshotOneProvider`` - primary, needs ``SCREENSHOTONE_ACCESS_KEY``
- ``MicrolinkProvider`` - keyless cold fallback with a short timeout

``select_provider`` picks one from credential availability.  Providers never
raise; they hand back the ``HttpResult`` with the image bytes as ``data``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from ..circuit_breaker import CircuitBreaker
from ._retry import HttpResult, async_http_fetch

logger = logging.getLogger(__name__)

_VIEWPORT_WIDTH = 800
_VIEWPORT_HEIGHT = 1200


class ScreenshotProvider(Protocol):
    name: str
    timeout: float

    async def capture(self, url: str) -> HttpResult: ...

    async def close(self) -> None: ...


class _HttpScreenshotProvider:
    name = "base"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._base_url = base_url
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._cb = circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _params(self, url: str) -> dict[str, Any]:
        raise NotImplementedError

    async def capture(self, url: str) -> HttpResult:
        if self._cb is not None and not self._cb.allow_request():
            logger.warning("%s circuit OPEN – skipping capture", self.name)
            return HttpResult(status=0, error="circuit open")
        client = await self._get_client()
        result = await async_http_fetch(
            client,
            self._base_url,
            params=self._params(url),
            timeout=self.timeout,
            as_bytes=True,
            label=f"Screenshot ({self.name})",
        )
        if self._cb is not None:
            if result.status == 0 or result.status >= 500:
                self._cb.record_failure()
            else:
                self._cb.record_success()
        return result


class ScreenshotOneProvider(_HttpScreenshotProvider):
    name = "screenshotone"

    def __init__(self, base_url: str, access_key: str, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)
        self._access_key = access_key

    def _params(self, url: str) -> dict[str, Any]:
        return {
            "access_key": self._access_key,
            "url": url,
            "format": "jpeg",
            "image_quality": 80,
            "viewport_width": _VIEWPORT_WIDTH,
            "viewport_height": _VIEWPORT_HEIGHT,
            "block_ads": "true",
            "block_cookie_banners": "true",
            "block_trackers": "true",
            "delay": 0,
            "timeout": 15,
        }


class MicrolinkProvider(_HttpScreenshotProvider):
    name = "microlink"

    def _params(self, url: str) -> dict[str, Any]:
        # embed=screenshot.url makes Microlink answer with the image itself
        return {
            "url": url,
            "screenshot": "true",
            "meta": "false",
            "embed": "screenshot.url",
            "waitForTimeout": 3000,
            "waitUntil": "networkidle0",
            "screenshot.type": "jpeg",
            "viewport.width": _VIEWPORT_WIDTH,
            "viewport.height": _VIEWPORT_HEIGHT,
        }


def select_provider(
    *,
    screenshotone_url: str,
    screenshotone_key: str,
    screenshotone_timeout: float,
    microlink_url: str,
    microlink_timeout: float,
    circuit_breaker: CircuitBreaker | None = None,
) -> ScreenshotProvider:
    """Return ScreenshotOne when a key is configured, else Microlink."""
    if screenshotone_key:
        return ScreenshotOneProvider(
            screenshotone_url,
            screenshotone_key,
            timeout=screenshotone_timeout,
            circuit_breaker=circuit_breaker,
        )
    logger.info("SCREENSHOTONE_ACCESS_KEY not set – using Microlink for screenshots")
    return MicrolinkProvider(
        microlink_url, timeout=microlink_timeout, circuit_breaker=circuit_breaker
    )
