"""
AI judgment via Anthropic Claude.

One Messages API call per investigation: every collected fact is rendered
into a compact text brief and, when a website screenshot exists, the image is
attached so the model can judge the site itself.  The model answers with a
JSON verdict that ``_parse_response`` validates into an ``AIJudgment``.

Unlike the collectors this step is not optional: any failure raises
``ReasoningFailure`` and the investigation fails with it.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ReasoningFailure
from .models import (
    AIJudgment,
    AuditReport,
    CreatorHistory,
    CreatorProfile,
    HolderDistribution,
    MarketSnapshot,
    OnChainFacts,
    TokenSocials,
    VisualEvidence,
)
from config import AI_MAX_TOKENS, AI_TIMEOUT_SECONDS, ANTHROPIC_MODEL

logger = logging.getLogger(__name__)

# Media types the Messages API accepts for image blocks
_SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
_VERDICTS = {"safe": "Safe", "caution": "Caution", "danger": "Danger"}


def can_attach_image(visual: Optional[VisualEvidence]) -> bool:
    """True when *visual* can be sent to the model as an image block."""
    return visual is not None and visual.media_type in _SUPPORTED_IMAGE_TYPES


# ── Lazy client (avoids import error when API key not set) ────────────────────

_client = None


def _get_client():
    global _client
    if _client is not None:
        return _client
    try:
        import anthropic  # noqa: PLC0415
    except ImportError as exc:
        raise RuntimeError(
            "anthropic package not installed. Run: pip install anthropic"
        ) from exc
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable not set")
    _client = anthropic.AsyncAnthropic(api_key=api_key, timeout=AI_TIMEOUT_SECONDS)
    return _client


# ── System prompt ─────────────────────────────────────────────────────────────

_SYSTEM_PROMPT = """\
You are a Solana token investigator. You receive on-chain facts, holder \
concentration, market figures, a third-party contract audit, the creator's \
launch history and, when available, a screenshot of the project website.

Respond with a single JSON object (no prose outside it) with EXACTLY these fields:

{
  "trustScore": <integer 0-100, higher = more trustworthy>,
  "verdict": <"Safe" | "Caution" | "Danger">,
  "summary": <string — one or two sentences, the headline conclusion>,
  "criminalProfile": <string — short label for the likely operator, e.g. \
"The Serial Launcher", "Legitimate Builder", "Unknown Entity">,
  "lies": [<string — claims on the website or socials contradicted by the data>],
  "evidence": [<string — concrete facts that support the verdict>],
  "analysis": [<string — reasoning steps, most important first>],
  "visualAnalysis": <string — what the screenshot shows; empty if no image>,
  "visualAssetReuse": <"YES" | "NO" | null — does the site reuse another \
project's template, artwork or branding? null if no image>,
  "visualReuseRationale": <string — why, naming the source if known>,
  "degenComment": <string — one blunt sentence in crypto-trader slang>
}

Scoring guide:
- 70-100: Authorities revoked, healthy liquidity, no red flags
- 40-69:  Mixed signals, meaningful risk
- 0-39:   Strong rug or scam indicators

Rules:
- Only reference data explicitly provided. Missing evidence is not a red flag by itself.
- Common meme imagery (Pepe, Wojak, Doge, community meme styles) is NOT asset reuse.
- Never describe a website you were not shown.\
"""


# ── Evidence bundle ──────────────────────────────────────────────────────────

@dataclass
class EvidenceBundle:
    """Everything the collectors gathered, handed to the model as one brief."""

    facts: OnChainFacts
    creator: CreatorProfile
    socials: TokenSocials
    holders: Optional[HolderDistribution] = None
    market: Optional[MarketSnapshot] = None
    audit: Optional[AuditReport] = None
    history: Optional[CreatorHistory] = None
    visual_note: str = ""
    degraded: dict[str, str] = field(default_factory=dict)


# ── Public API ────────────────────────────────────────────────────────────────

async def judge_token(
    bundle: EvidenceBundle, visual: Optional[VisualEvidence] = None
) -> AIJudgment:
    """Ask the model for a verdict.  Raises ``ReasoningFailure`` on any error."""
    mint = bundle.facts.mint
    prompt = _build_prompt(bundle)
    content: list[dict[str, Any]] = []
    attach_image = can_attach_image(visual)
    if visual is not None and not attach_image:
        logger.info("[ai_analyst] screenshot type %s not accepted – sending text only",
                    visual.media_type)
    if attach_image:
        content.append({
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": visual.media_type,  # type: ignore[union-attr]
                "data": base64.b64encode(visual.image).decode("ascii"),  # type: ignore[union-attr]
            },
        })
    content.append({"type": "text", "text": prompt})

    try:
        client = _get_client()
        message = await asyncio.wait_for(
            client.messages.create(
                model=ANTHROPIC_MODEL,
                max_tokens=AI_MAX_TOKENS,
                system=_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
            ),
            timeout=AI_TIMEOUT_SECONDS,
        )
    except RuntimeError as exc:
        # Missing package or API key
        logger.error("[ai_analyst] %s", exc)
        raise ReasoningFailure(str(exc)) from exc
    except asyncio.TimeoutError as exc:
        logger.error("[ai_analyst] timed out after %.0fs for %s", AI_TIMEOUT_SECONDS, mint[:12])
        raise ReasoningFailure("timeout") from exc
    except Exception as exc:
        exc_name = type(exc).__name__
        if "RateLimit" in exc_name:
            logger.warning("[ai_analyst] rate-limited for mint=%s", mint[:12])
        elif "NotFound" in exc_name:
            logger.error("[ai_analyst] model not found (%s) — set ANTHROPIC_MODEL env var. %s",
                         ANTHROPIC_MODEL, exc)
        elif "APIConnection" in exc_name:
            logger.error("[ai_analyst] connection error: %s", exc)
        elif "APIStatus" in exc_name:
            logger.error("[ai_analyst] API error: %s", exc)
        else:
            logger.exception("[ai_analyst] unexpected error for mint=%s", mint[:12])
        raise ReasoningFailure(exc_name) from exc

    raw = "".join(
        getattr(block, "text", "") for block in message.content
        if getattr(block, "type", "text") == "text"
    )
    logger.info(
        "[ai_analyst] %s | model=%s image=%s input_tokens=%d output_tokens=%d",
        mint[:12], ANTHROPIC_MODEL, attach_image,
        message.usage.input_tokens, message.usage.output_tokens,
    )
    judgment = _parse_response(raw)
    return judgment.model_copy(update={"had_visual_input": attach_image, "model": ANTHROPIC_MODEL})


# ── Prompt construction ───────────────────────────────────────────────────────

def _fmt_usd(value: float) -> str:
    return f"${value:,.0f}"


def _build_prompt(bundle: EvidenceBundle) -> str:
    facts = bundle.facts
    socials = bundle.socials
    lines: list[str] = [
        f"TOKEN: {socials.name or 'Unknown'} ({socials.symbol or '?'})",
        f"Mint: {facts.mint}",
        "",
        "=== ON-CHAIN ===",
        f"Mint authority: {facts.mint_authority or 'revoked'}",
        f"Freeze authority: {facts.freeze_authority or 'revoked'}",
        f"Supply: {facts.supply:,.0f} (decimals={facts.decimals}, program={facts.token_program})",
    ]

    creator = bundle.creator
    lines += ["", "=== CREATOR ==="]
    if creator.address:
        lines.append(f"Creator (authority): {creator.address}")
        lines.append(f"Creator holding: {creator.percentage:.2f}%"
                     f"{' — DUMPED' if creator.is_dumped else ''}"
                     f"{' — WHALE' if creator.is_whale else ''}")
    else:
        lines.append("Creator: unknown (authorities revoked)")
    if bundle.history is not None and bundle.history.creator_address:
        h = bundle.history
        lines.append(f"Earlier launches found: {h.previous_tokens}"
                     f"{' — SERIAL LAUNCHER' if h.is_serial_launcher else ''}")
        for t in h.tokens[:5]:
            when = t.created_at.date().isoformat() if t.created_at else "unknown date"
            lines.append(f"  - {t.mint} ({when})")

    if bundle.holders is not None and bundle.holders.holders:
        lines += ["", "=== HOLDERS ==="]
        lines.append(f"Top-10 concentration: {bundle.holders.top10_percentage:.1f}%"
                     f"{' (liquidity pools excluded)' if bundle.holders.lp_filtered else ''}")
        for i, entry in enumerate(bundle.holders.holders[:5], 1):
            lines.append(f"  {i}. {entry.owner or entry.address}: {entry.percentage:.2f}%")

    m = bundle.market
    if m is not None:
        lines += [
            "", "=== MARKET ===",
            f"Liquidity: {_fmt_usd(m.liquidity_usd)} | Market cap: {_fmt_usd(m.market_cap_usd)}"
            f" | Liquidity ratio: {m.liquidity_ratio:.2f}%",
            f"24h volume: {_fmt_usd(m.volume_24h_usd)} | Buys/Sells: {m.buys_24h}/{m.sells_24h}"
            f" | Price change 24h: {m.price_change_24h:+.1f}%",
            f"Pair age: {m.age_hours:.1f}h | Bot activity: {m.bot_activity}",
        ]
        lines += [f"  ! {a}" for a in m.anomalies]

    a = bundle.audit
    if a is not None:
        high = a.high_risks()
        lines += [
            "", "=== CONTRACT AUDIT ===",
            f"Risk score: {a.score:.0f} (higher = riskier) | High-severity findings: {len(high)}",
        ]
        # High-severity findings lead the capped list
        ordered = sorted(a.risks, key=lambda r: r not in high)
        lines += [f"  - [{r.level or '?'}] {r.name}: {r.description}" for r in ordered[:8]]

    links = [
        f"{label}: {url}"
        for label, url in (
            ("Website", socials.website),
            ("Twitter", socials.twitter),
            ("Telegram", socials.telegram),
            ("Discord", socials.discord),
        )
        if url
    ]
    if links:
        lines += ["", "=== LINKS ===", *links]

    if bundle.visual_note:
        lines += ["", "=== WEBSITE ===", bundle.visual_note]
    if bundle.degraded:
        lines += ["", "=== UNAVAILABLE DATA ==="]
        lines += [f"  - {name}: {reason}" for name, reason in sorted(bundle.degraded.items())]

    return "\n".join(lines)


# ── Response parsing ──────────────────────────────────────────────────────────

def _extract_json(raw: str) -> str:
    text = raw.strip()
    fence = text.find("```json")
    if fence != -1:
        start = fence + len("```json")
        end = text.find("```", start)
        return text[start:end if end != -1 else None].strip()
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return text


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def _reuse_flag(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "YES" if value else "NO"
    if isinstance(value, str) and value.strip().upper() in ("YES", "NO"):
        return value.strip().upper()
    return None


def _parse_response(raw: str) -> AIJudgment:
    """Parse the model's JSON; raise ``ReasoningFailure`` if it is not JSON."""
    try:
        data = json.loads(_extract_json(raw))
    except json.JSONDecodeError as exc:
        logger.warning("[ai_analyst] JSON parse failed, raw=%s", raw[:200])
        raise ReasoningFailure("unparsable response") from exc
    if not isinstance(data, dict):
        raise ReasoningFailure("response is not a JSON object")

    try:
        score = int(round(float(data.get("trustScore", 50))))
    except (TypeError, ValueError):
        score = 50

    return AIJudgment(
        trust_score=max(0, min(100, score)),
        verdict=_VERDICTS.get(str(data.get("verdict", "")).strip().lower(), "Caution"),  # type: ignore[arg-type]
        summary=str(data.get("summary") or "Analysis complete."),
        criminal_profile=str(data.get("criminalProfile") or "Unknown Entity"),
        lies=_as_list(data.get("lies")),
        evidence=_as_list(data.get("evidence")),
        analysis=_as_list(data.get("analysis")),
        visual_analysis=str(data.get("visualAnalysis") or ""),
        visual_asset_reuse=_reuse_flag(data.get("visualAssetReuse")),  # type: ignore[arg-type]
        visual_reuse_rationale=str(data.get("visualReuseRationale") or ""),
        degen_comment=str(data.get("degenComment") or ""),
    )
