"""
Investigation orchestrator.

Two lanes share one set of collectors:

``investigate`` (full lane)
    1. result cache check
    2. subject validation
    3. ledger facts (fatal on failure)
    4. known-offender fast path (terminal on a hit)
    5. fan-out: market, audit, holders
    6. creator profile
    7. fan-out: website screenshot, creator history
    8. AI judgment (fatal on failure)
    9. deterministic score, blend, override, verdict
    10. registry write-back on a Danger verdict
    11. assemble, cache, return

``quick_scan`` (fast lane)
    Phases 1-6 plus creator history.  No screenshot, no AI, no registry
    writes; the trust score is the deterministic score.

Every collector call goes through the evidence ``RequestDeduplicator``, so
both lanes running at once for the same token issue each outbound call once.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Iterator, Optional

from .ai_analyst import EvidenceBundle, can_attach_image, judge_token
from .audit_service import fetch_audit_report
from .cache import CacheService, RequestDeduplicator, TTLCache, normalize_subject
from .constants import PUMP_FUN_MINT_SUFFIX
from .errors import ClientInputError
from .history_service import fetch_creator_history
from .judgment_blender import blend, verdict_for
from .ledger_service import derive_creator_profile, fetch_holder_distribution, fetch_onchain_facts
from .logging_config import subject_ctx
from .market_service import fetch_market_evidence
from .models import (
    AIJudgment,
    CollectorOutcome,
    CreatorHistory,
    CreatorProfile,
    HolderDistribution,
    InvestigationResult,
    KnownOffenderRecord,
    MarketEvidence,
    OnChainFacts,
    VisualEvidence,
)
from .offender_registry import OffenderRegistry
from .risk_scorer import DEFAULT_POLICY, ScoringPolicy, score_token
from .utils import is_valid_address
from .visual_service import capture_visual_evidence, classify_website, fallback_visual_analysis
from config import (
    EVIDENCE_CACHE_MAX_ENTRIES,
    EVIDENCE_CACHE_TTL_SECONDS,
    RESULT_CACHE_MAX_ENTRIES,
    RESULT_CACHE_TTL_SECONDS,
)

logger = logging.getLogger(__name__)

Analyst = Callable[[EvidenceBundle, Optional[VisualEvidence]], Awaitable[AIJudgment]]

DEFAULT_TOKEN_NAME = "SPL Token"
DEFAULT_TOKEN_SYMBOL = "TOKEN"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _keep(outcome: Any) -> bool:
    """Memoise every collector outcome except transient (rate-limited) ones."""
    return not getattr(outcome, "transient", False)


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


class _PhaseTimer:
    """Wall-clock duration of each named phase, in milliseconds."""

    def __init__(self) -> None:
        self._started = time.perf_counter()
        self.timings: dict[str, float] = {}

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = round((time.perf_counter() - t0) * 1000, 1)

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._started) * 1000, 1)


class Investigator:
    """Runs investigations against injected providers.

    Parameters
    ----------
    rpc, dex, rugcheck, screenshots:
        Provider clients (see ``data_sources``).  Anything with the same
        async methods works, which is how tests inject fakes.
    registry:
        Known-offender store.
    result_cache, evidence_cache:
        ``CacheService`` instances for finished results and for collector
        outcomes.  Fresh ``TTLCache`` objects are created when omitted.
    analyst:
        Coroutine producing the ``AIJudgment``; defaults to Claude.
    """

    def __init__(
        self,
        *,
        rpc: Any,
        dex: Any,
        rugcheck: Any,
        screenshots: Any,
        registry: OffenderRegistry,
        result_cache: Optional[CacheService] = None,
        evidence_cache: Optional[CacheService] = None,
        analyst: Analyst = judge_token,
        policy: ScoringPolicy = DEFAULT_POLICY,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rpc = rpc
        self._dex = dex
        self._rugcheck = rugcheck
        self._screenshots = screenshots
        self._registry = registry
        self._analyst = analyst
        self._policy = policy
        self._now = now
        self._results = RequestDeduplicator(
            result_cache or TTLCache(RESULT_CACHE_TTL_SECONDS, RESULT_CACHE_MAX_ENTRIES),
            ttl=RESULT_CACHE_TTL_SECONDS,
        )
        self._evidence = RequestDeduplicator(
            evidence_cache or TTLCache(EVIDENCE_CACHE_TTL_SECONDS, EVIDENCE_CACHE_MAX_ENTRIES),
            ttl=EVIDENCE_CACHE_TTL_SECONDS,
        )

    @property
    def registry(self) -> OffenderRegistry:
        return self._registry

    @property
    def result_cache(self) -> CacheService:
        return self._results.cache

    @property
    def evidence_cache(self) -> CacheService:
        return self._evidence.cache

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def investigate(self, subject: str) -> InvestigationResult:
        """Full, AI-augmented investigation of one token."""
        return await self._enter("full", subject, self._run_full)

    async def quick_scan(self, subject: str) -> InvestigationResult:
        """Numeric, on-chain-only scan; no screenshot and no AI call."""
        return await self._enter("fast", subject, self._run_fast)

    async def _enter(
        self,
        lane: str,
        subject: str,
        runner: Callable[[str], Awaitable[InvestigationResult]],
    ) -> InvestigationResult:
        mint = normalize_subject(subject)
        key = f"{lane}:{mint}"

        cached = self._results.cache.get(key)
        if cached is not None:
            logger.info("[investigator] %s cache hit for %s", lane, mint[:12])
            return cached

        if not is_valid_address(mint):
            raise ClientInputError()

        return await self._results.run(key, partial(runner, mint))

    # ------------------------------------------------------------------
    # Lanes
    # ------------------------------------------------------------------

    async def _run_full(self, mint: str) -> InvestigationResult:
        ctx_token = subject_ctx.set(mint)
        try:
            timer = _PhaseTimer()
            logger.info("[investigator] full investigation started")

            with timer.phase("ledger"):
                facts = await self._facts(mint)

            with timer.phase("offender_check"):
                record = await self._lookup_offender(facts.creator_address)
            if record is not None:
                return await self._offender_result(facts, record, timer, lane="full")

            with timer.phase("evidence"):
                market_o, audit_o, holders_o = await asyncio.gather(
                    self._market(mint), self._audit(mint), self._holders(facts),
                )
            creator = derive_creator_profile(facts, holders_o.value)
            market_ev = market_o.value or MarketEvidence()
            website = market_ev.socials.website

            with timer.phase("visual_and_history"):
                visual_o, history_o = await asyncio.gather(
                    self._visual(website), self._history(facts.creator_address, mint),
                )
            visual: Optional[VisualEvidence] = visual_o.value
            degraded = _degraded(
                market=market_o, audit=audit_o, holders=holders_o,
                visual=visual_o, history=history_o,
            )

            if can_attach_image(visual):
                visual_note = f"Screenshot of {website} attached."
            elif visual is not None:
                visual_note = (
                    f"Screenshot of {website} was captured as {visual.media_type}, "
                    "which the model cannot receive. Visual analysis could not be performed."
                )
            else:
                visual_note = fallback_visual_analysis(website, None) or ""

            bundle = EvidenceBundle(
                facts=facts,
                creator=creator,
                socials=market_ev.socials,
                holders=holders_o.value,
                market=market_ev.snapshot,
                audit=audit_o.value,
                history=history_o.value,
                visual_note=visual_note,
                degraded=degraded,
            )

            with timer.phase("ai_judgment"):
                judgment = await self._analyst(bundle, visual)

            with timer.phase("scoring"):
                top10 = holders_o.value.top10_percentage if holders_o.value else 0.0
                deterministic = score_token(
                    facts, top10, creator, market_ev.snapshot, audit_o.value, self._policy
                )
                outcome = blend(
                    deterministic.score, judgment, screenshot_captured=visual is not None
                )
            if outcome.template_override_applied:
                logger.info("[investigator] template reuse override capped score at %d",
                            outcome.final_score)

            token_name = market_ev.socials.name or (audit_o.value.token_name if audit_o.value else "")
            token_name = token_name or DEFAULT_TOKEN_NAME

            if outcome.verdict == "Danger" and facts.creator_address:
                with timer.phase("registry_write"):
                    await self._flag_creator(
                        facts.creator_address, mint, token_name, outcome.verdict, judgment.summary
                    )

            token_symbol = market_ev.socials.symbol or (
                audit_o.value.token_symbol if audit_o.value else ""
            )
            result = InvestigationResult(
                lane="full",
                token_address=mint,
                token_name=token_name,
                token_symbol=token_symbol or DEFAULT_TOKEN_SYMBOL,
                is_pump_fun=mint.endswith(PUMP_FUN_MINT_SUFFIX),
                trust_score=outcome.final_score,
                verdict=outcome.verdict,
                deterministic_score=deterministic.score,
                score_penalties=deterministic.penalties,
                ai_score=judgment.trust_score,
                template_override_applied=outcome.template_override_applied,
                summary=judgment.summary,
                criminal_profile=judgment.criminal_profile,
                lies=judgment.lies,
                evidence=judgment.evidence,
                analysis=judgment.analysis,
                visual_analysis=(
                    judgment.visual_analysis
                    if visual is not None and judgment.had_visual_input
                    else fallback_visual_analysis(website, None) or ""
                ),
                degen_comment=judgment.degen_comment,
                on_chain=facts,
                creator=creator,
                holders=holders_o.value,
                market=market_ev.snapshot,
                audit=audit_o.value,
                socials=market_ev.socials,
                creator_history=history_o.value or CreatorHistory(),
                visual=visual,
                degraded=degraded,
                analyzed_at=self._now(),
                analysis_time_ms=timer.elapsed_ms,
                phase_timings_ms=timer.timings,
            )
            logger.info(
                "[investigator] verdict=%s score=%d (deterministic=%d ai=%d) in %.0f ms",
                result.verdict, result.trust_score, deterministic.score,
                judgment.trust_score, result.analysis_time_ms,
            )
            return result
        finally:
            subject_ctx.reset(ctx_token)

    async def _run_fast(self, mint: str) -> InvestigationResult:
        ctx_token = subject_ctx.set(mint)
        try:
            timer = _PhaseTimer()

            with timer.phase("ledger"):
                facts = await self._facts(mint)

            with timer.phase("offender_check"):
                record = await self._lookup_offender(facts.creator_address)
            if record is not None:
                return await self._offender_result(facts, record, timer, lane="fast")

            with timer.phase("evidence"):
                market_o, audit_o, holders_o, history_o = await asyncio.gather(
                    self._market(mint),
                    self._audit(mint),
                    self._holders(facts),
                    self._history(facts.creator_address, mint),
                )
            creator = derive_creator_profile(facts, holders_o.value)
            market_ev = market_o.value or MarketEvidence()

            with timer.phase("scoring"):
                top10 = holders_o.value.top10_percentage if holders_o.value else 0.0
                deterministic = score_token(
                    facts, top10, creator, market_ev.snapshot, audit_o.value, self._policy
                )

            flags = len(deterministic.penalties)
            return InvestigationResult(
                lane="fast",
                token_address=mint,
                token_name=market_ev.socials.name or DEFAULT_TOKEN_NAME,
                token_symbol=market_ev.socials.symbol or DEFAULT_TOKEN_SYMBOL,
                is_pump_fun=mint.endswith(PUMP_FUN_MINT_SUFFIX),
                trust_score=deterministic.score,
                verdict=verdict_for(deterministic.score),
                deterministic_score=deterministic.score,
                score_penalties=deterministic.penalties,
                summary=(
                    f"On-chain scan found {flags} risk flag{'s' if flags != 1 else ''}."
                    if flags else "On-chain scan found no risk flags."
                ),
                evidence=deterministic.penalties,
                on_chain=facts,
                creator=creator,
                holders=holders_o.value,
                market=market_ev.snapshot,
                audit=audit_o.value,
                socials=market_ev.socials,
                creator_history=history_o.value or CreatorHistory(),
                degraded=_degraded(
                    market=market_o, audit=audit_o, holders=holders_o, history=history_o
                ),
                analyzed_at=self._now(),
                analysis_time_ms=timer.elapsed_ms,
                phase_timings_ms=timer.timings,
            )
        finally:
            subject_ctx.reset(ctx_token)

    # ------------------------------------------------------------------
    # Known-offender fast path
    # ------------------------------------------------------------------

    async def _lookup_offender(self, creator: Optional[str]) -> Optional[KnownOffenderRecord]:
        if not creator:
            return None
        try:
            return await self._registry.lookup(creator)
        except Exception as exc:
            logger.warning("[investigator] offender lookup failed for %s: %s", creator[:12], exc)
            return None

    async def _offender_result(
        self,
        facts: OnChainFacts,
        record: KnownOffenderRecord,
        timer: _PhaseTimer,
        *,
        lane: str,
    ) -> InvestigationResult:
        """Maximal-severity result straight from the registry record.

        The full lane counts the new token as another detection; the fast
        lane only reads.
        """
        creator = record.creator_address
        if lane == "full":
            with timer.phase("registry_write"):
                updated = await self._flag_creator(
                    creator, facts.mint, DEFAULT_TOKEN_NAME, "Danger",
                    "Token launched by a known offender",
                )
            record = updated or record

        flagged_on = record.first_flagged_at.date().isoformat()
        count = record.detection_count
        previous = record.token_name or record.token_address or "unknown token"
        logger.warning(
            "[investigator] known offender %s (%s detection) – skipping collectors",
            creator[:12], _ordinal(count),
        )
        return InvestigationResult(
            lane=lane,  # type: ignore[arg-type]
            token_address=facts.mint,
            token_name=DEFAULT_TOKEN_NAME,
            token_symbol="SCAM",
            is_pump_fun=facts.mint.endswith(PUMP_FUN_MINT_SUFFIX),
            trust_score=0,
            verdict="Danger",
            summary=(
                f"KNOWN SCAMMER. Wallet flagged on {flagged_on}. "
                f"{_ordinal(count)} detected token. DO NOT INTERACT."
            ),
            criminal_profile="The Repeat Offender",
            evidence=[
                f"Previous scam: {previous}",
                f"First flagged: {flagged_on}",
                f"Detection count: {count}",
            ],
            analysis=[
                f"INSTANT BLOCK — creator {creator} is in the known-offender registry.",
                f"Original verdict: {record.verdict}. Reason: {record.reason or 'n/a'}",
            ],
            visual_analysis="Skipped: the creator is a known offender.",
            degen_comment="Same dev, new bag. Hard pass.",
            on_chain=facts,
            creator=CreatorProfile(address=creator, is_dumped=True),
            creator_history=CreatorHistory(
                creator_address=creator,
                previous_tokens=count,
                is_serial_launcher=True,
            ),
            is_known_offender=True,
            offender_record=record,
            analyzed_at=self._now(),
            analysis_time_ms=timer.elapsed_ms,
            phase_timings_ms=timer.timings,
        )

    async def _flag_creator(
        self, creator: str, mint: str, token_name: str, verdict: str, reason: str
    ) -> Optional[KnownOffenderRecord]:
        """Registry write-back.  Failures are logged, never raised."""
        try:
            record = await self._registry.record_detection(
                creator,
                token_address=mint,
                token_name=token_name,
                verdict=verdict,
                reason=reason,
            )
        except Exception:
            logger.warning("[investigator] could not flag %s", creator[:12], exc_info=True)
            return None
        logger.info("[investigator] flagged %s (detections=%d)", creator[:12], record.detection_count)
        return record

    # ------------------------------------------------------------------
    # Deduplicated collectors
    # ------------------------------------------------------------------

    async def _facts(self, mint: str) -> OnChainFacts:
        return await self._evidence.run(
            f"ledger:{mint}", partial(fetch_onchain_facts, self._rpc, mint)
        )

    async def _market(self, mint: str) -> CollectorOutcome[MarketEvidence]:
        return await self._evidence.run(
            f"market:{mint}", partial(fetch_market_evidence, self._dex, mint), cache_if=_keep
        )

    async def _audit(self, mint: str) -> CollectorOutcome:
        return await self._evidence.run(
            f"audit:{mint}", partial(fetch_audit_report, self._rugcheck, mint), cache_if=_keep
        )

    async def _holders(self, facts: OnChainFacts) -> CollectorOutcome[HolderDistribution]:
        return await self._evidence.run(
            f"holders:{facts.mint}", partial(fetch_holder_distribution, self._rpc, facts),
            cache_if=_keep,
        )

    async def _history(self, creator: Optional[str], mint: str) -> CollectorOutcome[CreatorHistory]:
        return await self._evidence.run(
            f"history:{creator or '-'}:{mint}",
            partial(fetch_creator_history, self._rpc, creator, exclude_mint=mint),
            cache_if=_keep,
        )

    async def _visual(self, website: Optional[str]) -> CollectorOutcome[VisualEvidence]:
        if classify_website(website) != "capturable":
            return CollectorOutcome()
        return await self._evidence.run(
            f"visual:{website}",
            partial(capture_visual_evidence, self._screenshots, website),
            cache_if=lambda o: o.ok,
        )


def _degraded(**outcomes: CollectorOutcome) -> dict[str, str]:
    return {name: o.degraded for name, o in outcomes.items() if o.degraded}
