"""
Blend the deterministic score with the AI judgment.

Two rules:

* **Ceiling** - ``final = min(deterministic, ai)``.  The model can only pull
  a score down, never lift it past what the facts justify.
* **Template override** - a site that reuses another project's visual assets
  is capped at ``TEMPLATE_REUSE_CAP``.  It only fires when a screenshot was
  really captured and sent, so a hallucinated visual claim cannot trigger
  it, and not when the reuse is ordinary meme imagery.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import AIJudgment, Verdict
from config import TEMPLATE_REUSE_CAP

_REUSE_ASSERTION_RE = re.compile(r"VISUAL ASSET REUSE:\s*YES", re.IGNORECASE)
_MEME_CULTURE_RE = re.compile(
    r"meme culture|meme aesthetic|thematic|standard for|pepe|wojak|doge"
    r"|iconic meme|cultural|tribute|community meme",
    re.IGNORECASE,
)

SAFE_THRESHOLD = 70
CAUTION_THRESHOLD = 40


@dataclass(frozen=True)
class BlendOutcome:
    final_score: int
    verdict: Verdict
    template_override_applied: bool


def verdict_for(score: int) -> Verdict:
    if score >= SAFE_THRESHOLD:
        return "Safe"
    if score >= CAUTION_THRESHOLD:
        return "Caution"
    return "Danger"


def asserts_template_reuse(judgment: AIJudgment) -> bool:
    """True when the judgment claims reuse that is not meme-culture imagery."""
    if judgment.visual_asset_reuse is not None:
        claimed = judgment.visual_asset_reuse == "YES"
    else:
        claimed = bool(_REUSE_ASSERTION_RE.search(judgment.visual_analysis))
    if not claimed:
        return False
    context = f"{judgment.visual_reuse_rationale}\n{judgment.visual_analysis}"
    return not _MEME_CULTURE_RE.search(context)


def blend(
    deterministic_score: int,
    judgment: AIJudgment,
    *,
    screenshot_captured: bool,
    cap: int = TEMPLATE_REUSE_CAP,
) -> BlendOutcome:
    final = min(deterministic_score, judgment.trust_score)
    override = (
        screenshot_captured
        and judgment.had_visual_input
        and final > cap
        and asserts_template_reuse(judgment)
    )
    if override:
        final = cap
    return BlendOutcome(final_score=final, verdict=verdict_for(final), template_override_applied=override)
