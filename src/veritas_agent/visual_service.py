"""
Visual evidence: a screenshot of the project's website for the vision model.

Only real destinations are captured; social profiles and invite links are
skipped.  Capture never raises – a missing screenshot is an expected state
and the narrative fallback says why.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Literal, Optional

from .constants import REDIRECT_DOMAINS
from .models import CollectorOutcome, VisualEvidence
from config import SAVE_SCREENSHOTS, SCREENSHOT_DIR, SCREENSHOT_RETENTION_SECONDS

logger = logging.getLogger(__name__)

WebsiteKind = Literal["missing", "redirect", "capturable"]

NO_WEBSITE_MESSAGE = "No website found. Visual analysis could not be performed."
CAPTURE_FAILED_MESSAGE = "Screenshot capture failed. Visual analysis could not be performed."


def redirect_message(url: str) -> str:
    return (
        f"Website URL appears to be a social media or redirect link ({url}). "
        "No screenshot was captured for visual analysis."
    )


def classify_website(url: Optional[str]) -> WebsiteKind:
    if not url or not url.strip():
        return "missing"
    lowered = url.lower()
    if any(domain in lowered for domain in REDIRECT_DOMAINS):
        return "redirect"
    return "capturable"


def fallback_visual_analysis(url: Optional[str], visual: Optional[VisualEvidence]) -> Optional[str]:
    """Narrative used when the model had nothing to look at; ``None`` when a
    screenshot exists and the model's own text should be used."""
    if visual is not None:
        return None
    kind = classify_website(url)
    if kind == "missing":
        return NO_WEBSITE_MESSAGE
    if kind == "redirect":
        return redirect_message(url or "")
    return CAPTURE_FAILED_MESSAGE


async def capture_visual_evidence(
    provider: Any, url: Optional[str]
) -> CollectorOutcome[VisualEvidence]:
    """Screenshot *url* with the configured provider."""
    kind = classify_website(url)
    if kind != "capturable" or url is None:
        # Nothing to capture is not a degradation
        return CollectorOutcome()

    timeout = getattr(provider, "timeout", 10.0)
    try:
        # Small grace period over the provider's own HTTP timeout
        result = await asyncio.wait_for(provider.capture(url), timeout=timeout + 1)
    except asyncio.TimeoutError:
        logger.warning("[visual] %s timed out for %s", getattr(provider, "name", "provider"), url)
        return CollectorOutcome.failure("screenshot timeout")
    except Exception as exc:
        logger.warning("[visual] capture failed for %s: %s", url, exc)
        return CollectorOutcome.failure("screenshot unavailable")

    if result.rate_limited:
        return CollectorOutcome.failure("screenshot rate limited", transient=True)
    content_type = (result.content_type or "image/jpeg").split(";")[0].strip().lower()
    if not result.ok or not result.data or not content_type.startswith("image/"):
        logger.info("[visual] no usable screenshot for %s (status=%s, type=%s)",
                    url, result.status, content_type)
        return CollectorOutcome.failure("screenshot not captured")

    evidence = VisualEvidence(
        source_url=url,
        provider=getattr(provider, "name", "unknown"),
        media_type=content_type,
        image=result.data,
    )
    if SAVE_SCREENSHOTS:
        try:
            await asyncio.to_thread(save_screenshot, evidence, SCREENSHOT_DIR)
        except OSError as exc:
            logger.warning("[visual] could not save screenshot: %s", exc)
    return CollectorOutcome.success(evidence)


def save_screenshot(
    evidence: VisualEvidence,
    directory: str = SCREENSHOT_DIR,
    *,
    retention_seconds: int = SCREENSHOT_RETENTION_SECONDS,
) -> str:
    """Write *evidence* to disk and prune captures older than the retention."""
    os.makedirs(directory, exist_ok=True)
    now = time.time()
    for name in os.listdir(directory):
        path = os.path.join(directory, name)
        if os.path.isfile(path) and now - os.path.getmtime(path) > retention_seconds:
            os.remove(path)

    ext = evidence.media_type.split("/")[-1].replace("jpeg", "jpg")
    path = os.path.join(directory, f"screenshot-{int(now * 1000)}.{ext}")
    with open(path, "wb") as fh:
        fh.write(evidence.image)
    logger.debug("[visual] saved %s (%d bytes)", path, evidence.size_bytes)
    return path
