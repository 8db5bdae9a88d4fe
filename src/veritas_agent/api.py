"""
REST API for the Veritas token investigator using FastAPI.

Endpoints
---------
GET  /health                 - Health check
GET  /investigate?mint=<MINT> - Full, AI-augmented investigation
GET  /scan?mint=<MINT>        - Fast on-chain-only scan
GET  /offenders/{address}     - Known-offender registry lookup

Security features:
- Rate limiting via slowapi (per-IP)
- Solana address validation (base58, 32 bytes)
- Internal error details hidden from clients
- Graceful startup/shutdown of HTTP clients
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import sentry_sdk
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from config import (
    ANALYSIS_TIMEOUT_SECONDS,
    CORS_ORIGINS,
    RATE_LIMIT_INVESTIGATE,
    RATE_LIMIT_SCAN,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
    SOLANA_RPC_ENDPOINT,
)
from .circuit_breaker import get_all_statuses as cb_statuses
from .data_sources._clients import close_clients, get_investigator, init_clients
from .errors import AssetNotFoundError, ClientInputError, ReasoningFailure
from .logging_config import generate_request_id, request_id_ctx, setup_logging
from .models import InvestigationResult, KnownOffenderRecord
from .utils import is_valid_address

# Initialise structured logging early
setup_logging()
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Sentry – initialise before anything else so startup errors are captured
# ---------------------------------------------------------------------------
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        # Don't capture 4xx client errors as Sentry events
        before_send=lambda event, hint: (
            None
            if (hint.get("exc_info") and
                isinstance(hint["exc_info"][1], HTTPException) and
                (hint["exc_info"][1].status_code or 500) < 500)
            else event
        ),
    )
    logger.info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)
else:
    logger.info("SENTRY_DSN not set – error tracking disabled")

_start_time = time.monotonic()

# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Initialise shared clients on startup, close on shutdown."""
    if not SOLANA_RPC_ENDPOINT or not SOLANA_RPC_ENDPOINT.startswith("http"):
        logger.error("SOLANA_RPC_ENDPOINT is not a valid URL: %s", SOLANA_RPC_ENDPOINT)
        raise RuntimeError("Invalid SOLANA_RPC_ENDPOINT – must be an HTTP(S) URL")

    logger.info("Starting up – initialising clients …")
    await init_clients()
    yield
    logger.info("Shutting down – closing clients …")
    await close_clients()


app = FastAPI(
    title="Veritas Agent API",
    description="Trust verdicts for Solana tokens from on-chain, market and AI evidence.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Content-Type", "Accept"],
)


# ---------------------------------------------------------------------------
# Request-ID & access-log middleware
# ---------------------------------------------------------------------------
class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request for tracing."""

    async def dispatch(self, request: Request, call_next):
        rid = generate_request_id()
        request_id_ctx.set(rid)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(RequestIdMiddleware)


# ------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------


async def _run_bounded(
    call: Callable[[str], Awaitable[InvestigationResult]], mint: str
) -> InvestigationResult:
    """Run one investigation lane and translate domain errors to HTTP."""
    try:
        return await asyncio.wait_for(call(mint), timeout=ANALYSIS_TIMEOUT_SECONDS)
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except AssetNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except ReasoningFailure as exc:
        logger.error("AI judgment failed for %s: %s", mint, exc.detail)
        raise HTTPException(status_code=502, detail=exc.message) from exc
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=504,
            detail=f"Analysis timed out after {ANALYSIS_TIMEOUT_SECONDS}s. Try again.",
        )
    except Exception as exc:
        logger.exception("Investigation failed for %s", mint)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@app.get("/", tags=["system"], include_in_schema=False)
async def root():
    """Redirect to Swagger UI."""
    return RedirectResponse(url="/docs")


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Health check including uptime, circuit breaker states and cache sizes."""
    investigator = get_investigator()
    cache_info: dict = {}
    for name, cache in (
        ("results", investigator.result_cache),
        ("evidence", investigator.evidence_cache),
    ):
        try:
            cache_info[name] = len(cache)  # type: ignore[arg-type]
        except TypeError:
            cache_info[name] = None
    return {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "cache": cache_info,
        "circuit_breakers": cb_statuses(),
    }


@app.get("/investigate", response_model=InvestigationResult, tags=["investigation"])
@limiter.limit(RATE_LIMIT_INVESTIGATE)
async def investigate(
    request: Request,
    mint: str = Query(..., description="Solana mint address of the token"),
) -> InvestigationResult:
    """Full investigation: evidence, screenshot, AI judgment and verdict."""
    return await _run_bounded(get_investigator().investigate, mint)


@app.get("/scan", response_model=InvestigationResult, tags=["investigation"])
@limiter.limit(RATE_LIMIT_SCAN)
async def scan(
    request: Request,
    mint: str = Query(..., description="Solana mint address of the token"),
) -> InvestigationResult:
    """Fast deterministic scan without AI or screenshots."""
    return await _run_bounded(get_investigator().quick_scan, mint)


@app.get("/offenders/{address}", response_model=KnownOffenderRecord, tags=["registry"])
async def get_offender(address: str) -> KnownOffenderRecord:
    """Return the registry record for a creator wallet."""
    address = address.strip()
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail="Invalid Solana address format")
    record = await get_investigator().registry.lookup(address)
    if record is None:
        raise HTTPException(status_code=404, detail="Address is not a known offender")
    return record
