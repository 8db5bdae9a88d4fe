"""
Deterministic risk scorer.

Starts at 100 and subtracts fixed penalties for each red flag in the
collected evidence.  The result is clamped to ``[0, policy.ceiling]``; the
ceiling sits below 100 because no heuristic alone may certify a token as
fully safe.

``score_token`` is pure: no I/O, no clock, no globals read at call time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import AuditReport, CreatorProfile, DeterministicScore, MarketSnapshot, OnChainFacts
from config import (
    AUDIT_HIGH_RISK_SCORE,
    AUDIT_MEDIUM_RISK_SCORE,
    LIQUIDITY_FLOOR_USD,
    LIQUIDITY_MCAP_MIN_RATIO,
    NEW_PAIR_AGE_HOURS,
    SCORE_CEILING,
    TOP10_HIGH_PCT,
    TOP10_MEDIUM_PCT,
)


@dataclass(frozen=True)
class ScoringPolicy:
    """Thresholds and penalty sizes.  Defaults come from ``config``."""

    ceiling: int = SCORE_CEILING
    mint_authority_penalty: int = 40
    freeze_authority_penalty: int = 40
    top10_high_pct: float = TOP10_HIGH_PCT
    top10_high_penalty: int = 15
    top10_medium_pct: float = TOP10_MEDIUM_PCT
    top10_medium_penalty: int = 10
    dumped_penalty: int = 15
    whale_penalty: int = 10
    liquidity_floor_usd: float = LIQUIDITY_FLOOR_USD
    liquidity_floor_penalty: int = 20
    liquidity_mcap_min_ratio: float = LIQUIDITY_MCAP_MIN_RATIO
    liquidity_ratio_penalty: int = 15
    new_pair_age_hours: float = NEW_PAIR_AGE_HOURS
    new_pair_penalty: int = 10
    audit_high_score: float = AUDIT_HIGH_RISK_SCORE
    audit_high_penalty: int = 20
    audit_medium_score: float = AUDIT_MEDIUM_RISK_SCORE
    audit_medium_penalty: int = 10


DEFAULT_POLICY = ScoringPolicy()


def score_token(
    facts: OnChainFacts,
    top10_percentage: float,
    creator: CreatorProfile,
    market: Optional[MarketSnapshot],
    audit: Optional[AuditReport],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> DeterministicScore:
    """Score the evidence.  Missing market data counts as a brand-new pair."""
    score = 100
    penalties: list[str] = []

    def _penalise(points: int, reason: str) -> None:
        nonlocal score
        score -= points
        penalties.append(f"-{points} {reason}")

    if facts.mint_authority:
        _penalise(policy.mint_authority_penalty, "mint authority enabled")
    if facts.freeze_authority:
        _penalise(policy.freeze_authority_penalty, "freeze authority enabled")

    if top10_percentage > policy.top10_high_pct:
        _penalise(policy.top10_high_penalty, f"top-10 holders own {top10_percentage:.1f}%")
    elif top10_percentage > policy.top10_medium_pct:
        _penalise(policy.top10_medium_penalty, f"top-10 holders own {top10_percentage:.1f}%")

    if creator.is_dumped:
        _penalise(policy.dumped_penalty, "creator has dumped their holdings")
    if creator.is_whale:
        _penalise(policy.whale_penalty, f"creator holds {creator.percentage:.1f}%")

    if market is not None:
        liquidity = market.liquidity_usd
        mcap = market.market_cap_usd
        if liquidity < policy.liquidity_floor_usd:
            _penalise(policy.liquidity_floor_penalty, f"liquidity only ${liquidity:,.0f}")
        elif mcap > 0 and liquidity / mcap < policy.liquidity_mcap_min_ratio:
            _penalise(policy.liquidity_ratio_penalty, "liquidity is thin relative to market cap")

    age_hours = market.age_hours if market is not None else 0.0
    if age_hours < policy.new_pair_age_hours:
        _penalise(policy.new_pair_penalty, "trading pair is less than an hour old")

    if audit is not None:
        if audit.score > policy.audit_high_score:
            _penalise(policy.audit_high_penalty, f"audit risk score {audit.score:.0f}")
        elif audit.score > policy.audit_medium_score:
            _penalise(policy.audit_medium_penalty, f"audit risk score {audit.score:.0f}")

    return DeterministicScore(score=min(policy.ceiling, max(0, score)), penalties=penalties)
