"""Tests for src/veritas_agent/ai_analyst.py

Strategy:
- _build_prompt: verify evidence sections are rendered (or omitted)
- _parse_response: happy path, markdown fences, coercion, bad JSON
- judge_token: mock the anthropic client for integration + error paths
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import CREATOR, MINT
from veritas_agent.ai_analyst import (
    EvidenceBundle,
    _build_prompt,
    _parse_response,
    can_attach_image,
    judge_token,
)
from veritas_agent.errors import ReasoningFailure
from veritas_agent.models import (
    AuditReport,
    AuditRisk,
    CreatorHistory,
    CreatorProfile,
    MarketSnapshot,
    OnChainFacts,
    TokenSocials,
    VisualEvidence,
)

_GET_CLIENT = "veritas_agent.ai_analyst._get_client"

GOOD_RESPONSE = {
    "trustScore": 22,
    "verdict": "Danger",
    "summary": "Mint authority live and the creator already sold.",
    "criminalProfile": "The Serial Launcher",
    "lies": ["Website claims liquidity is locked"],
    "evidence": ["Mint authority enabled", "Creator holds 0%"],
    "analysis": ["Authorities are not revoked"],
    "visualAnalysis": "Generic template site.",
    "visualAssetReuse": "yes",
    "visualReuseRationale": "Same layout as a known rug",
    "degenComment": "Ngmi.",
}


def _bundle(**overrides) -> EvidenceBundle:
    values = dict(
        facts=OnChainFacts(mint=MINT, mint_authority=CREATOR, supply=1_000_000, decimals=6),
        creator=CreatorProfile(address=CREATOR, percentage=0.0, is_dumped=True),
        socials=TokenSocials(name="Rug Inu", symbol="RUG", website="https://ruginu.io"),
    )
    values.update(overrides)
    return EvidenceBundle(**values)


def _message(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    usage = MagicMock()
    usage.input_tokens = 900
    usage.output_tokens = 250
    msg = MagicMock()
    msg.content = [block]
    msg.usage = usage
    return msg


def _client(response=None, side_effect=None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=side_effect)
    return client


# ─────────────────────────────────────────────────────────────────────────────
# _build_prompt
# ─────────────────────────────────────────────────────────────────────────────

class TestBuildPrompt:

    def test_minimal_bundle(self):
        prompt = _build_prompt(_bundle())
        assert MINT in prompt
        assert "=== ON-CHAIN ===" in prompt
        assert f"Mint authority: {CREATOR}" in prompt
        assert "Freeze authority: revoked" in prompt
        assert "DUMPED" in prompt
        assert "=== MARKET ===" not in prompt
        assert "=== CONTRACT AUDIT ===" not in prompt

    def test_all_sections(self):
        bundle = _bundle(
            market=MarketSnapshot(liquidity_usd=1234, market_cap_usd=50000,
                                  anomalies=["Fake Volume: 24h volume is 120x liquidity"]),
            audit=AuditReport(score=650, risks=[AuditRisk(name="Mutable metadata", level="warn")]),
            history=CreatorHistory(creator_address=CREATOR, previous_tokens=3, is_serial_launcher=True),
            visual_note="Screenshot of https://ruginu.io attached.",
            degraded={"audit": "audit timeout"},
        )
        prompt = _build_prompt(bundle)
        assert "Liquidity: $1,234" in prompt
        assert "! Fake Volume" in prompt
        assert "Risk score: 650" in prompt
        assert "[warn] Mutable metadata" in prompt
        assert "SERIAL LAUNCHER" in prompt
        assert "Website: https://ruginu.io" in prompt
        assert "=== WEBSITE ===" in prompt
        assert "audit: audit timeout" in prompt

    def test_revoked_authorities(self):
        prompt = _build_prompt(_bundle(
            facts=OnChainFacts(mint=MINT, supply=10), creator=CreatorProfile(),
        ))
        assert "Creator: unknown" in prompt

    def test_high_severity_audit_findings_listed_first(self):
        warnings = [AuditRisk(name=f"Minor issue {i}", level="warn") for i in range(10)]
        danger = AuditRisk(name="Freeze Authority still enabled", level="danger")
        prompt = _build_prompt(_bundle(audit=AuditReport(score=400, risks=warnings + [danger])))
        assert "High-severity findings: 1" in prompt
        assert "[danger] Freeze Authority still enabled" in prompt
        assert prompt.index("Freeze Authority") < prompt.index("Minor issue 0")
        assert "Minor issue 9" not in prompt


# ─────────────────────────────────────────────────────────────────────────────
# _parse_response
# ─────────────────────────────────────────────────────────────────────────────

class TestParseResponse:

    def test_plain_json(self):
        judgment = _parse_response(json.dumps(GOOD_RESPONSE))
        assert judgment.trust_score == 22
        assert judgment.verdict == "Danger"
        assert judgment.criminal_profile == "The Serial Launcher"
        assert judgment.visual_asset_reuse == "YES"
        assert judgment.lies == ["Website claims liquidity is locked"]

    def test_markdown_fence(self):
        raw = f"Here you go:\n```json\n{json.dumps(GOOD_RESPONSE)}\n```"
        assert _parse_response(raw).trust_score == 22

    def test_prose_around_object(self):
        raw = f"Verdict follows {json.dumps(GOOD_RESPONSE)} end."
        assert _parse_response(raw).verdict == "Danger"

    def test_coercion_and_defaults(self):
        judgment = _parse_response(json.dumps({
            "trustScore": 140, "verdict": "weird", "lies": "single lie", "visualAssetReuse": False,
        }))
        assert judgment.trust_score == 100
        assert judgment.verdict == "Caution"
        assert judgment.lies == ["single lie"]
        assert judgment.visual_asset_reuse == "NO"
        assert judgment.summary == "Analysis complete."

    def test_non_numeric_score(self):
        assert _parse_response('{"trustScore": "high"}').trust_score == 50

    def test_bad_json_raises(self):
        with pytest.raises(ReasoningFailure):
            _parse_response("I cannot help with that.")

    def test_array_raises(self):
        with pytest.raises(ReasoningFailure):
            _parse_response("[1, 2]")


class TestCanAttachImage:

    @pytest.mark.parametrize("media_type, expected", [
        ("image/png", True),
        ("image/jpeg", True),
        ("image/webp", True),
        ("image/svg+xml", False),
        ("image/bmp", False),
    ])
    def test_media_types(self, media_type, expected):
        visual = VisualEvidence(source_url="https://site.io", provider="p", media_type=media_type, image=b"x")
        assert can_attach_image(visual) is expected

    def test_no_screenshot(self):
        assert can_attach_image(None) is False


# ─────────────────────────────────────────────────────────────────────────────
# judge_token
# ─────────────────────────────────────────────────────────────────────────────

class TestJudgeToken:

    @pytest.mark.asyncio
    async def test_text_only(self):
        client = _client(_message(json.dumps(GOOD_RESPONSE)))
        with patch(_GET_CLIENT, return_value=client):
            judgment = await judge_token(_bundle())

        assert judgment.trust_score == 22
        assert judgment.had_visual_input is False
        content = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert [block["type"] for block in content] == ["text"]

    @pytest.mark.asyncio
    async def test_attaches_screenshot(self):
        visual = VisualEvidence(source_url="https://ruginu.io", provider="p",
                                media_type="image/jpeg", image=b"\xff\xd8jpeg")
        client = _client(_message(json.dumps(GOOD_RESPONSE)))
        with patch(_GET_CLIENT, return_value=client):
            judgment = await judge_token(_bundle(), visual)

        assert judgment.had_visual_input is True
        content = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_unsupported_image_type_sent_as_text(self):
        visual = VisualEvidence(source_url="https://ruginu.io", provider="p",
                                media_type="image/svg+xml", image=b"<svg/>")
        client = _client(_message(json.dumps(GOOD_RESPONSE)))
        with patch(_GET_CLIENT, return_value=client):
            judgment = await judge_token(_bundle(), visual)
        assert judgment.had_visual_input is False

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with patch(_GET_CLIENT, side_effect=RuntimeError("ANTHROPIC_API_KEY environment variable not set")):
            with pytest.raises(ReasoningFailure) as exc_info:
                await judge_token(_bundle())
        assert exc_info.value.message == "AI analysis failed"

    @pytest.mark.asyncio
    async def test_api_error(self):
        client = _client(side_effect=ConnectionError("reset"))
        with patch(_GET_CLIENT, return_value=client):
            with pytest.raises(ReasoningFailure) as exc_info:
                await judge_token(_bundle())
        assert exc_info.value.detail == "ConnectionError"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = _client(side_effect=slow)
        with patch(_GET_CLIENT, return_value=client), \
                patch("veritas_agent.ai_analyst.AI_TIMEOUT_SECONDS", 0.01):
            with pytest.raises(ReasoningFailure) as exc_info:
                await judge_token(_bundle())
        assert exc_info.value.detail == "timeout"

    @pytest.mark.asyncio
    async def test_unparsable_reply(self):
        client = _client(_message("Sorry, no JSON today."))
        with patch(_GET_CLIENT, return_value=client):
            with pytest.raises(ReasoningFailure):
                await judge_token(_bundle())
