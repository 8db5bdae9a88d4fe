"""Unit tests for Pydantic models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from conftest import CREATOR, MINT
from veritas_agent.models import (
    AIJudgment,
    AuditReport,
    AuditRisk,
    CollectorOutcome,
    InvestigationResult,
    KnownOffenderRecord,
    OnChainFacts,
    VisualEvidence,
)

_NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)


class TestOnChainFacts:
    def test_creator_prefers_mint_authority(self):
        facts = OnChainFacts(mint=MINT, mint_authority=CREATOR, freeze_authority="Other")
        assert facts.creator_address == CREATOR

    def test_creator_falls_back_to_freeze_authority(self):
        assert OnChainFacts(mint=MINT, freeze_authority=CREATOR).creator_address == CREATOR

    def test_revoked(self):
        assert OnChainFacts(mint=MINT).creator_address is None

    def test_negative_supply_rejected(self):
        with pytest.raises(ValidationError):
            OnChainFacts(mint=MINT, supply=-1)


class TestAuditReport:
    def test_high_risks(self):
        report = AuditReport(score=700, risks=[
            AuditRisk(name="Mutable metadata", level="warn"),
            AuditRisk(name="Freeze Authority still enabled", level="danger"),
        ])
        assert [r.name for r in report.high_risks()] == ["Freeze Authority still enabled"]


class TestAIJudgment:
    def test_defaults(self):
        judgment = AIJudgment()
        assert judgment.trust_score == 50
        assert judgment.verdict == "Caution"
        assert judgment.visual_asset_reuse is None
        assert not judgment.had_visual_input

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            AIJudgment(trust_score=101)


class TestVisualEvidence:
    def test_image_not_serialised(self):
        visual = VisualEvidence(source_url="https://a.io", provider="microlink", image=b"1234")
        dumped = visual.model_dump()
        assert "image" not in dumped
        assert dumped["size_bytes"] == 4


class TestKnownOffenderRecord:
    def test_count_at_least_one(self):
        with pytest.raises(ValidationError):
            KnownOffenderRecord(
                creator_address=CREATOR, first_flagged_at=_NOW, last_flagged_at=_NOW,
                detection_count=0,
            )


class TestInvestigationResult:
    def test_minimal(self):
        result = InvestigationResult(
            token_address=MINT, trust_score=0, verdict="Danger", analyzed_at=_NOW,
        )
        assert result.lane == "full"
        assert result.token_name == "SPL Token"
        assert result.degraded == {}

    def test_frozen(self):
        result = InvestigationResult(
            token_address=MINT, trust_score=90, verdict="Safe", analyzed_at=_NOW,
        )
        with pytest.raises(ValidationError):
            result.trust_score = 0

    def test_unknown_verdict_rejected(self):
        with pytest.raises(ValidationError):
            InvestigationResult(
                token_address=MINT, trust_score=50, verdict="Maybe", analyzed_at=_NOW,
            )


class TestCollectorOutcome:
    def test_success(self):
        outcome = CollectorOutcome.success(3)
        assert outcome.ok
        assert outcome.value == 3

    def test_failure(self):
        outcome = CollectorOutcome.failure("audit rate limited", transient=True)
        assert not outcome.ok
        assert outcome.transient
        assert outcome.value is None
