"""
Singleton client management for the Veritas investigator.

Provides lazy-initialised clients for Solana RPC, DexScreener, RugCheck and
the screenshot provider, the known-offender registry, and the shared
``Investigator`` wired to all of them.

``init_clients`` / ``close_clients`` should be called at app startup/shutdown.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..circuit_breaker import CircuitBreaker, register
from ..data_sources.dexscreener import DexScreenerClient
from ..data_sources.rugcheck import RugCheckClient
from ..data_sources.screenshot import ScreenshotProvider, select_provider
from ..data_sources.solana_rpc import SolanaRpcClient
from ..investigator import Investigator
from ..offender_registry import OffenderRegistry, build_registry
from config import (
    AUDIT_TIMEOUT_SECONDS,
    CB_FAILURE_THRESHOLD,
    CB_RECOVERY_TIMEOUT,
    DEXSCREENER_BASE_URL,
    MICROLINK_BASE_URL,
    MICROLINK_TIMEOUT_SECONDS,
    REGISTRY_BACKEND,
    REGISTRY_SQLITE_PATH,
    REQUEST_TIMEOUT,
    RUGCHECK_API_KEY,
    RUGCHECK_BASE_URL,
    SCREENSHOTONE_ACCESS_KEY,
    SCREENSHOTONE_BASE_URL,
    SCREENSHOTONE_TIMEOUT_SECONDS,
    SOLANA_RPC_ENDPOINT,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singletons (created once, reused)
# ---------------------------------------------------------------------------
_rpc_client: Optional[SolanaRpcClient] = None
_dex_client: Optional[DexScreenerClient] = None
_rugcheck_client: Optional[RugCheckClient] = None
_screenshot_provider: Optional[ScreenshotProvider] = None
_registry: Optional[OffenderRegistry] = None
_investigator: Optional[Investigator] = None


def _breaker(name: str) -> CircuitBreaker:
    return register(
        CircuitBreaker(
            name,
            failure_threshold=CB_FAILURE_THRESHOLD,
            recovery_timeout=CB_RECOVERY_TIMEOUT,
        )
    )


# Circuit breakers – one per external service, registered for health reporting
cb_solana_rpc: CircuitBreaker = _breaker("solana_rpc")
cb_dexscreener: CircuitBreaker = _breaker("dexscreener")
cb_rugcheck: CircuitBreaker = _breaker("rugcheck")
cb_screenshot: CircuitBreaker = _breaker("screenshot")


def get_rpc_client() -> SolanaRpcClient:
    global _rpc_client
    if _rpc_client is None:
        _rpc_client = SolanaRpcClient(
            endpoint=SOLANA_RPC_ENDPOINT,
            timeout=REQUEST_TIMEOUT,
            circuit_breaker=cb_solana_rpc,
        )
    return _rpc_client


def get_dex_client() -> DexScreenerClient:
    global _dex_client
    if _dex_client is None:
        _dex_client = DexScreenerClient(
            base_url=DEXSCREENER_BASE_URL,
            timeout=REQUEST_TIMEOUT,
            circuit_breaker=cb_dexscreener,
        )
    return _dex_client


def get_rugcheck_client() -> RugCheckClient:
    global _rugcheck_client
    if _rugcheck_client is None:
        _rugcheck_client = RugCheckClient(
            RUGCHECK_BASE_URL,
            api_key=RUGCHECK_API_KEY,
            timeout=AUDIT_TIMEOUT_SECONDS,
            circuit_breaker=cb_rugcheck,
        )
    return _rugcheck_client


def get_screenshot_provider() -> ScreenshotProvider:
    global _screenshot_provider
    if _screenshot_provider is None:
        _screenshot_provider = select_provider(
            screenshotone_url=SCREENSHOTONE_BASE_URL,
            screenshotone_key=SCREENSHOTONE_ACCESS_KEY,
            screenshotone_timeout=SCREENSHOTONE_TIMEOUT_SECONDS,
            microlink_url=MICROLINK_BASE_URL,
            microlink_timeout=MICROLINK_TIMEOUT_SECONDS,
            circuit_breaker=cb_screenshot,
        )
    return _screenshot_provider


def get_registry() -> OffenderRegistry:
    global _registry
    if _registry is None:
        _registry = build_registry(REGISTRY_BACKEND, REGISTRY_SQLITE_PATH)
    return _registry


def build_investigator() -> Investigator:
    """Create an ``Investigator`` wired to the singleton clients."""
    return Investigator(
        rpc=get_rpc_client(),
        dex=get_dex_client(),
        rugcheck=get_rugcheck_client(),
        screenshots=get_screenshot_provider(),
        registry=get_registry(),
    )


def get_investigator() -> Investigator:
    """Return the process-wide investigator (its caches are shared)."""
    global _investigator
    if _investigator is None:
        _investigator = build_investigator()
    return _investigator


async def init_clients() -> None:
    """Eagerly create the singletons (called at startup)."""
    get_investigator()
    logger.info(
        "Clients ready (registry=%s, screenshots=%s)",
        REGISTRY_BACKEND, getattr(_screenshot_provider, "name", "?"),
    )


async def close_clients() -> None:
    """Close singleton clients gracefully (called at shutdown)."""
    global _rpc_client, _dex_client, _rugcheck_client, _screenshot_provider
    global _registry, _investigator
    for client in (_rpc_client, _dex_client, _rugcheck_client, _screenshot_provider):
        if client is not None:
            await client.close()
    if _registry is not None:
        await _registry.close()
    _rpc_client = _dex_client = _rugcheck_client = None
    _screenshot_provider = None
    _registry = None
    _investigator = None
