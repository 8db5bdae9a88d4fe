"""
Pydantic models used throughout the Veritas token investigator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

Verdict = Literal["Safe", "Caution", "Danger"]
BotActivity = Literal["Low", "Medium", "High"]
TokenProgram = Literal["spl-token", "spl-token-2022"]


# ---------------------------------------------------------------------------
# Ledger facts
# ---------------------------------------------------------------------------
class OnChainFacts(BaseModel):
    """Mint account state read once from the ledger."""

    mint: str = Field(..., description="SPL mint address")
    token_program: TokenProgram = Field("spl-token", description="Owning token program")
    mint_authority: Optional[str] = Field(None, description="Mint authority, if not revoked")
    freeze_authority: Optional[str] = Field(None, description="Freeze authority, if not revoked")
    raw_supply: int = Field(0, ge=0, description="Supply in base units")
    decimals: int = Field(0, ge=0, description="Decimal precision")
    supply: float = Field(0.0, ge=0.0, description="Supply in whole tokens")

    @property
    def creator_address(self) -> Optional[str]:
        """Authority used as a proxy for the creator (mint, then freeze)."""
        return self.mint_authority or self.freeze_authority


class HolderEntry(BaseModel):
    address: str = Field(..., description="Token account address")
    owner: Optional[str] = Field(None, description="Wallet owning the token account")
    balance: float = Field(0.0, ge=0.0, description="Balance in whole tokens")
    percentage: float = Field(0.0, ge=0.0, description="Share of total supply (0-100)")
    is_likely_lp: bool = Field(False, description="Owner looks like a liquidity pool")


class HolderDistribution(BaseModel):
    holders: list[HolderEntry] = Field(default_factory=list)
    top10_percentage: float = Field(0.0, ge=0.0, description="Sum of top holder shares")
    lp_filtered: bool = Field(
        False, description="True when at least one LP owner was excluded"
    )


class CreatorProfile(BaseModel):
    address: Optional[str] = Field(None, description="Creator (authority) address")
    percentage: float = Field(0.0, ge=0.0, description="Creator share of supply")
    is_dumped: bool = False
    is_whale: bool = False


# ---------------------------------------------------------------------------
# Market
# ---------------------------------------------------------------------------
class MarketSnapshot(BaseModel):
    """Trading-pair figures and derived bot-activity signals."""

    pair_address: str = ""
    dex_id: str = ""
    liquidity_usd: float = 0.0
    market_cap_usd: float = 0.0
    volume_24h_usd: float = 0.0
    buys_24h: int = 0
    sells_24h: int = 0
    price_change_24h: float = 0.0
    age_hours: float = Field(0.0, ge=0.0, description="Hours since the pair was created")
    liquidity_ratio: float = Field(0.0, description="Liquidity / market cap, in percent")
    buy_sell_ratio: float = 0.0
    wash_score: float = Field(0.0, description="24h volume / liquidity")
    bot_activity: BotActivity = "Low"
    anomalies: list[str] = Field(default_factory=list)


class TokenSocials(BaseModel):
    name: str = ""
    symbol: str = ""
    image_url: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    discord: Optional[str] = None


class MarketEvidence(BaseModel):
    snapshot: Optional[MarketSnapshot] = None
    socials: TokenSocials = Field(default_factory=TokenSocials)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
class AuditRisk(BaseModel):
    name: str
    description: str = ""
    level: str = Field("", description="Severity as reported, e.g. 'danger', 'warn'")
    score: float = 0.0


class AuditReport(BaseModel):
    """Contract-risk audit; a higher score means riskier."""

    score: float = 0.0
    risks: list[AuditRisk] = Field(default_factory=list)
    creator: Optional[str] = Field(None, description="Creator/deployer hint from the auditor")
    token_name: str = ""
    token_symbol: str = ""

    def high_risks(self) -> list[AuditRisk]:
        return [r for r in self.risks if r.level.lower() in ("danger", "high", "critical")]


# ---------------------------------------------------------------------------
# Creator history
# ---------------------------------------------------------------------------
class CreatedToken(BaseModel):
    mint: str
    created_at: Optional[datetime] = None
    signature: str = ""


class CreatorHistory(BaseModel):
    creator_address: Optional[str] = None
    previous_tokens: int = Field(0, ge=0)
    tokens: list[CreatedToken] = Field(default_factory=list)
    is_serial_launcher: bool = False


# ---------------------------------------------------------------------------
# Visual evidence
# ---------------------------------------------------------------------------
class VisualEvidence(BaseModel):
    source_url: str
    provider: str
    media_type: str = "image/jpeg"
    image: bytes = Field(..., exclude=True, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def size_bytes(self) -> int:
        return len(self.image)


# ---------------------------------------------------------------------------
# AI judgment
# ---------------------------------------------------------------------------
class AIJudgment(BaseModel):
    trust_score: int = Field(50, ge=0, le=100)
    verdict: Verdict = "Caution"
    summary: str = "Analysis complete."
    criminal_profile: str = "Unknown Entity"
    lies: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    analysis: list[str] = Field(default_factory=list)
    visual_analysis: str = ""
    visual_asset_reuse: Optional[Literal["YES", "NO"]] = None
    visual_reuse_rationale: str = ""
    degen_comment: str = ""
    had_visual_input: bool = Field(
        False, description="A screenshot was attached to the request that produced this"
    )
    model: str = ""


class DeterministicScore(BaseModel):
    score: int = Field(..., ge=0, le=100)
    penalties: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Known offenders
# ---------------------------------------------------------------------------
class KnownOffenderRecord(BaseModel):
    creator_address: str
    first_flagged_at: datetime
    last_flagged_at: datetime
    detection_count: int = Field(1, ge=1)
    token_address: str = Field("", description="Token of the first severe verdict")
    token_name: str = ""
    verdict: str = "Danger"
    reason: str = ""
    last_token_address: str = Field("", description="Most recent token attributed")


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------
class InvestigationResult(BaseModel):
    """Everything an investigation produced.  Immutable once built."""

    model_config = ConfigDict(frozen=True)

    lane: Literal["full", "fast"] = "full"
    token_address: str
    token_name: str = "SPL Token"
    token_symbol: str = "TOKEN"
    is_pump_fun: bool = False

    trust_score: int = Field(..., ge=0, le=100)
    verdict: Verdict
    deterministic_score: Optional[int] = None
    score_penalties: list[str] = Field(default_factory=list)
    ai_score: Optional[int] = None
    template_override_applied: bool = False

    summary: str = ""
    criminal_profile: str = ""
    lies: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    analysis: list[str] = Field(default_factory=list)
    visual_analysis: str = ""
    degen_comment: str = ""

    on_chain: Optional[OnChainFacts] = None
    creator: CreatorProfile = Field(default_factory=CreatorProfile)
    holders: Optional[HolderDistribution] = None
    market: Optional[MarketSnapshot] = None
    audit: Optional[AuditReport] = None
    socials: TokenSocials = Field(default_factory=TokenSocials)
    creator_history: CreatorHistory = Field(default_factory=CreatorHistory)
    visual: Optional[VisualEvidence] = None

    is_known_offender: bool = False
    offender_record: Optional[KnownOffenderRecord] = None
    degraded: dict[str, str] = Field(
        default_factory=dict, description="Collector name -> degradation reason"
    )

    analyzed_at: datetime
    analysis_time_ms: float = 0.0
    phase_timings_ms: dict[str, float] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Collector outcome
# ---------------------------------------------------------------------------
T = TypeVar("T")


@dataclass(frozen=True)
class CollectorOutcome(Generic[T]):
    """Result of an optional evidence collector.

    ``degraded`` carries the reason evidence is missing or partial; ``value``
    may still hold a usable empty representation.  ``transient`` outcomes
    (rate limiting) must not be memoised.
    """

    value: Optional[T] = None
    degraded: Optional[str] = None
    transient: bool = False

    @property
    def ok(self) -> bool:
        return self.degraded is None

    @classmethod
    def success(cls, value: T) -> "CollectorOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls, reason: str, *, value: Optional[T] = None, transient: bool = False
    ) -> "CollectorOutcome[T]":
        return cls(value=value, degraded=reason, transient=transient)
