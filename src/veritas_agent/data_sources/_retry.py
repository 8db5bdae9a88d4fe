"""
Shared async HTTP helpers.

- ``async_http_get`` / ``async_http_post_json`` retry with exponential
  backoff (429 honours ``Retry-After``, 403 is never retried) and return
  ``None`` once retries are exhausted.  Used by DexScreener and Solana RPC.
- ``async_http_fetch`` is a single attempt that keeps the status code, for
  providers whose callers treat 404 / 429 / other errors differently
  (RugCheck, screenshot services).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResult:
    """Outcome of a single HTTP attempt.  ``status`` is 0 when no response
    was received at all (timeout, DNS, connection reset)."""

    status: int
    data: Any = None
    content_type: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def rate_limited(self) -> bool:
        return self.status == 429

    @property
    def not_found(self) -> bool:
        return self.status == 404


def _parse_retry_after(resp: httpx.Response, default: float) -> float:
    """Extract wait time from a ``Retry-After`` header, or use *default*.

    Only the integer-seconds form is handled; HTTP-dates fall back to
    *default*.
    """
    raw = resp.headers.get("retry-after")
    if raw is not None:
        try:
            return max(float(raw), 0.5)
        except (ValueError, TypeError):
            pass
    return default


async def async_http_get(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    max_retries: int = 3,
    backoff_base: float = 1.0,
    label: str = "HTTP",
) -> Optional[Any]:
    """GET *url* with retry + exponential backoff on 429 / transient errors.

    Returns parsed JSON on success, ``None`` on exhausted retries.
    """
    for attempt in range(max_retries):
        try:
            resp = await client.get(url, params=params, headers=headers)
            if resp.status_code == 429:
                wait = _parse_retry_after(resp, backoff_base * (2 ** attempt))
                logger.warning("%s rate-limited, retry in %.1fs", label, wait)
                await asyncio.sleep(wait)
                continue
            if resp.status_code == 403:
                logger.warning("%s 403 for %s – endpoint may block this request", label, url)
                return None
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("%s HTTP %s for %s", label, exc.response.status_code, url)
        except httpx.RequestError as exc:
            logger.warning("%s request failed: %s – %s", label, url, exc)
        except ValueError:
            logger.warning("%s returned a non-JSON body for %s", label, url)
            return None
        if attempt < max_retries - 1:
            await asyncio.sleep(backoff_base * (2 ** attempt))
    return None


async def async_http_post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: Any,
    max_retries: int = 3,
    backoff_base: float = 1.5,
    label: str = "RPC",
    full_body: bool = False,
) -> Optional[Any]:
    """POST a JSON-RPC *payload* with retry + exponential backoff.

    Returns the ``result`` member (or the whole body when absent), ``None``
    on exhausted retries or a JSON-RPC ``error`` member.  With *full_body*
    the decoded envelope is returned instead, so a ``null`` result can be
    told apart from a failed request.
    """
    for attempt in range(max_retries):
        try:
            resp = await client.post(url, json=json_payload)
            if resp.status_code == 429:
                wait = _parse_retry_after(resp, backoff_base * (2 ** attempt))
                logger.warning("%s rate-limited, retry in %.1fs", label, wait)
                await asyncio.sleep(wait)
                continue
            if resp.status_code == 403:
                logger.warning("%s 403 for %s – endpoint may block this method", label, url)
                return None
            resp.raise_for_status()
            body = resp.json()
            if "error" in body:
                logger.warning("%s error: %s", label, body["error"])
                return None
            if full_body:
                return body
            return body.get("result", body)
        except httpx.HTTPStatusError as exc:
            logger.warning("%s HTTP %s", label, exc.response.status_code)
        except httpx.RequestError as exc:
            logger.warning("%s request failed: %s", label, exc)
        if attempt < max_retries - 1:
            await asyncio.sleep(backoff_base * (2 ** attempt))
    return None


async def async_http_fetch(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    as_bytes: bool = False,
    label: str = "HTTP",
) -> HttpResult:
    """One GET attempt that never raises.

    JSON is decoded unless *as_bytes* is set, in which case the raw body and
    ``content-type`` are returned.
    """
    try:
        resp = await client.get(url, params=params, headers=headers, timeout=timeout)
    except httpx.TimeoutException:
        logger.warning("%s timed out after %ss", label, timeout)
        return HttpResult(status=0, error="timeout")
    except httpx.RequestError as exc:
        logger.warning("%s request failed: %s", label, exc)
        return HttpResult(status=0, error=str(exc) or type(exc).__name__)

    content_type = resp.headers.get("content-type", "")
    if not resp.is_success:
        if resp.status_code not in (404, 429):
            logger.warning("%s HTTP %s", label, resp.status_code)
        return HttpResult(status=resp.status_code, content_type=content_type)
    if as_bytes:
        return HttpResult(status=resp.status_code, data=resp.content, content_type=content_type)
    try:
        return HttpResult(status=resp.status_code, data=resp.json(), content_type=content_type)
    except ValueError:
        logger.warning("%s returned a non-JSON body", label)
        return HttpResult(status=resp.status_code, content_type=content_type, error="invalid json")
