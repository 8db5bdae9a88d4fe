"""
Contract-risk audit collector (RugCheck).

Outcome mapping:

==========================  ============  =========  =========
upstream                    value         degraded   memoised
==========================  ============  =========  =========
200 with a report           AuditReport   –          yes
404 (token not indexed)     None          yes        yes
429 (rate limited)          None          yes        **no**
anything else / timeout     None          yes        yes
==========================  ============  =========  =========
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .models import AuditReport, AuditRisk, CollectorOutcome
from .utils import safe_float
from config import AUDIT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def parse_report(payload: dict[str, Any]) -> AuditReport:
    """Build an ``AuditReport`` from a RugCheck ``/report`` body."""
    meta = payload.get("tokenMeta") or {}
    creator = (
        payload.get("creator")
        or payload.get("deployer")
        or meta.get("creator")
        or meta.get("updateAuthority")
        or None
    )
    risks = [
        AuditRisk(
            name=r.get("name") or "Unnamed risk",
            description=r.get("description") or "",
            level=r.get("level") or "",
            score=safe_float(r.get("score")) or 0.0,
        )
        for r in (payload.get("risks") or [])
        if isinstance(r, dict)
    ]
    return AuditReport(
        score=safe_float(payload.get("score")) or 0.0,
        risks=risks,
        creator=creator,
        token_name=meta.get("name") or "",
        token_symbol=meta.get("symbol") or "",
    )


async def fetch_audit_report(
    rugcheck: Any, mint: str, *, timeout: float = AUDIT_TIMEOUT_SECONDS
) -> CollectorOutcome[AuditReport]:
    try:
        result = await asyncio.wait_for(rugcheck.get_report(mint, timeout=timeout), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("[audit] RugCheck timed out after %.0fs for %s", timeout, mint[:12])
        return CollectorOutcome.failure("audit timeout")
    except Exception as exc:
        logger.warning("[audit] RugCheck failed for %s: %s", mint[:12], exc)
        return CollectorOutcome.failure("audit unavailable")

    if result.rate_limited:
        logger.warning("[audit] RugCheck rate-limited for %s – not caching", mint[:12])
        return CollectorOutcome.failure("audit rate limited", transient=True)
    if result.not_found:
        logger.info("[audit] %s not indexed by RugCheck yet", mint[:12])
        return CollectorOutcome.failure("audit not indexed")

    payload: Optional[dict] = result.data if isinstance(result.data, dict) else None
    if not result.ok or payload is None:
        return CollectorOutcome.failure("audit unavailable")

    try:
        report = parse_report(payload)
    except Exception as exc:
        logger.warning("[audit] malformed RugCheck report for %s: %s", mint[:12], exc)
        return CollectorOutcome.failure("audit unavailable")
    logger.debug("[audit] %s score=%.0f risks=%d", mint[:12], report.score, len(report.risks))
    return CollectorOutcome.success(report)
