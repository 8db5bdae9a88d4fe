"""
Project configuration file for the Veritas token investigator.

This module centralises all user-modifiable settings such as API keys,
provider endpoints, timeouts and scoring thresholds.  Every value can be
overridden through an environment variable of the same name.

The scoring thresholds below are hand-tuned policy, not derived constants:
changing one changes verdicts, so treat edits as policy decisions.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.1f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


def _parse_list(name: str, default: str = "") -> frozenset[str]:
    """Parse a comma-separated env var into a set of trimmed, non-empty items."""
    raw = os.getenv(name, default) or ""
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def _parse_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Solana RPC
# ---------------------------------------------------------------------------
HELIUS_API_KEY: str = os.getenv("HELIUS_API_KEY", "")
SOLANA_RPC_ENDPOINT: str = os.getenv(
    "SOLANA_RPC_ENDPOINT",
    f"https://mainnet.helius-rpc.com/?api-key={HELIUS_API_KEY}"
    if HELIUS_API_KEY
    else "https://api.mainnet-beta.solana.com",
)

# ---------------------------------------------------------------------------
# DexScreener
# ---------------------------------------------------------------------------
DEXSCREENER_BASE_URL: str = os.getenv(
    "DEXSCREENER_BASE_URL",
    "https://api.dexscreener.com",
)

# ---------------------------------------------------------------------------
# RugCheck (contract audit)
# ---------------------------------------------------------------------------
RUGCHECK_BASE_URL: str = os.getenv("RUGCHECK_BASE_URL", "https://api.rugcheck.xyz")
RUGCHECK_API_KEY: str = os.getenv("RUGCHECK_API_KEY", "")

# ---------------------------------------------------------------------------
# Screenshot providers
# ---------------------------------------------------------------------------
SCREENSHOTONE_BASE_URL: str = os.getenv(
    "SCREENSHOTONE_BASE_URL", "https://api.screenshotone.com/take"
)
SCREENSHOTONE_ACCESS_KEY: str = os.getenv("SCREENSHOTONE_ACCESS_KEY", "")
MICROLINK_BASE_URL: str = os.getenv("MICROLINK_BASE_URL", "https://api.microlink.io")
SAVE_SCREENSHOTS: bool = _parse_bool("VERITAS_SAVE_SCREENSHOTS")
SCREENSHOT_DIR: str = os.getenv("SCREENSHOT_DIR", "data/screenshots")
SCREENSHOT_RETENTION_SECONDS: int = _parse_int(
    "SCREENSHOT_RETENTION_SECONDS", "3600", minimum=60
)

# ---------------------------------------------------------------------------
# Anthropic (AI judgment)
# ---------------------------------------------------------------------------
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001")
AI_MAX_TOKENS: int = _parse_int("AI_MAX_TOKENS", "1500", minimum=256)
AI_TIMEOUT_SECONDS: float = _parse_float("AI_TIMEOUT_SECONDS", "45", low=1.0, high=300.0)

# ---------------------------------------------------------------------------
# Collector timeouts (seconds)
# ---------------------------------------------------------------------------
MARKET_TIMEOUT_SECONDS: float = _parse_float("MARKET_TIMEOUT_SECONDS", "8", low=0.5, high=60.0)
AUDIT_TIMEOUT_SECONDS: float = _parse_float("AUDIT_TIMEOUT_SECONDS", "5", low=0.5, high=60.0)
SCREENSHOTONE_TIMEOUT_SECONDS: float = _parse_float(
    "SCREENSHOTONE_TIMEOUT_SECONDS", "6", low=0.5, high=60.0
)
MICROLINK_TIMEOUT_SECONDS: float = _parse_float(
    "MICROLINK_TIMEOUT_SECONDS", "2", low=0.5, high=60.0
)
HISTORY_TIMEOUT_SECONDS: float = _parse_float(
    "HISTORY_TIMEOUT_SECONDS", "20", low=1.0, high=120.0
)

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
RESULT_CACHE_TTL_SECONDS: int = _parse_int("RESULT_CACHE_TTL_SECONDS", "300", minimum=1)
RESULT_CACHE_MAX_ENTRIES: int = _parse_int("RESULT_CACHE_MAX_ENTRIES", "50", minimum=1)
EVIDENCE_CACHE_TTL_SECONDS: int = _parse_int("EVIDENCE_CACHE_TTL_SECONDS", "30", minimum=1)
EVIDENCE_CACHE_MAX_ENTRIES: int = _parse_int("EVIDENCE_CACHE_MAX_ENTRIES", "2000", minimum=10)

# ---------------------------------------------------------------------------
# Holder distribution
# ---------------------------------------------------------------------------
TOP_HOLDERS_COUNT: int = _parse_int("TOP_HOLDERS_COUNT", "10", minimum=1)
LP_OWNER_ALLOWLIST: frozenset[str] = _parse_list("VERITAS_LP_OWNER_ALLOWLIST")
LP_OWNER_DENYLIST: frozenset[str] = _parse_list("VERITAS_LP_OWNER_DENYLIST")

# ---------------------------------------------------------------------------
# Creator history
# ---------------------------------------------------------------------------
HISTORY_SIGNATURE_LIMIT: int = _parse_int("HISTORY_SIGNATURE_LIMIT", "100", minimum=1)
HISTORY_SCAN_DEPTH: int = _parse_int("HISTORY_SCAN_DEPTH", "50", minimum=1)
SERIAL_LAUNCHER_MIN_TOKENS: int = _parse_int("SERIAL_LAUNCHER_MIN_TOKENS", "2", minimum=1)

# ---------------------------------------------------------------------------
# Scoring thresholds (policy – see module docstring)
# ---------------------------------------------------------------------------
SCORE_CEILING: int = _parse_int("SCORE_CEILING", "88", minimum=1)
TOP10_HIGH_PCT: float = _parse_float("TOP10_HIGH_PCT", "50", low=0.0, high=100.0)
TOP10_MEDIUM_PCT: float = _parse_float("TOP10_MEDIUM_PCT", "30", low=0.0, high=100.0)
CREATOR_DUMPED_PCT: float = _parse_float("CREATOR_DUMPED_PCT", "1", low=0.0, high=100.0)
CREATOR_WHALE_PCT: float = _parse_float("CREATOR_WHALE_PCT", "20", low=0.0, high=100.0)
LIQUIDITY_FLOOR_USD: float = _parse_float(
    "LIQUIDITY_FLOOR_USD", "5000", low=0.0, high=1_000_000_000.0
)
LIQUIDITY_MCAP_MIN_RATIO: float = _parse_float("LIQUIDITY_MCAP_MIN_RATIO", "0.02")
NEW_PAIR_AGE_HOURS: float = _parse_float("NEW_PAIR_AGE_HOURS", "1", low=0.0, high=8760.0)
AUDIT_HIGH_RISK_SCORE: float = _parse_float(
    "AUDIT_HIGH_RISK_SCORE", "500", low=0.0, high=1_000_000.0
)
AUDIT_MEDIUM_RISK_SCORE: float = _parse_float(
    "AUDIT_MEDIUM_RISK_SCORE", "200", low=0.0, high=1_000_000.0
)
TEMPLATE_REUSE_CAP: int = _parse_int("TEMPLATE_REUSE_CAP", "50", minimum=0)

# Validate tier ordering
if TOP10_MEDIUM_PCT > TOP10_HIGH_PCT:
    logger.warning(
        "TOP10_MEDIUM_PCT (%.1f) exceeds TOP10_HIGH_PCT (%.1f). Concentration "
        "penalties will be skewed.",
        TOP10_MEDIUM_PCT, TOP10_HIGH_PCT,
    )

# ---------------------------------------------------------------------------
# Known-offender registry
# ---------------------------------------------------------------------------
REGISTRY_BACKEND: str = os.getenv("REGISTRY_BACKEND", "sqlite")  # "memory" or "sqlite"
REGISTRY_SQLITE_PATH: str = os.getenv("REGISTRY_SQLITE_PATH", "data/offenders.db")

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
MAX_CONCURRENT_RPC: int = _parse_int("MAX_CONCURRENT_RPC", "5", minimum=1)
REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "15", minimum=1)
ANALYSIS_TIMEOUT_SECONDS: int = _parse_int("ANALYSIS_TIMEOUT_SECONDS", "90", minimum=5)

# ---------------------------------------------------------------------------
# Rate limiting (slowapi format, e.g. "10/minute")
# ---------------------------------------------------------------------------
RATE_LIMIT_INVESTIGATE: str = os.getenv("RATE_LIMIT_INVESTIGATE", "10/minute")
RATE_LIMIT_SCAN: str = os.getenv("RATE_LIMIT_SCAN", "30/minute")

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------
CB_FAILURE_THRESHOLD: int = _parse_int("CB_FAILURE_THRESHOLD", "8", minimum=1)
CB_RECOVERY_TIMEOUT: float = float(os.getenv("CB_RECOVERY_TIMEOUT", "60"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = _parse_int("API_PORT", "8000", minimum=1)
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
