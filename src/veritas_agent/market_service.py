"""
Market snapshot, socials and bot-activity classification from DexScreener.

The highest-liquidity pair stands in for the token's market.  Three derived
ratios feed ``classify_bot_activity``:

- liquidity ratio - liquidity as a percentage of market cap
- buy/sell ratio - 24h buys per sell
- wash score - 24h volume divided by liquidity
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .models import BotActivity, CollectorOutcome, MarketEvidence, MarketSnapshot, TokenSocials
from .utils import safe_float
from config import MARKET_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# (threshold, points, label) - first matching tier per signal wins
_LIQUIDITY_RATIO_TIERS = ((1.0, 3, "Liquidity Scam Risk"), (5.0, 1, "Low Liquidity"))
_BUY_SELL_TIERS = ((20.0, 3, "Honeypot Risk"), (10.0, 2, "Abnormal Trading"))
_WASH_TIERS = ((100.0, 3, "Fake Volume"), (50.0, 2, "Suspicious Volume"))


def classify_bot_activity(
    liquidity_ratio: float, buy_sell_ratio: float, wash_score: float
) -> tuple[BotActivity, list[str]]:
    """Map the three ratios to Low / Medium / High plus anomaly strings."""
    points = 0
    anomalies: list[str] = []

    for threshold, pts, label in _LIQUIDITY_RATIO_TIERS:
        if liquidity_ratio < threshold:
            points += pts
            anomalies.append(f"{label}: liquidity is {liquidity_ratio:.2f}% of market cap")
            break
    for threshold, pts, label in _BUY_SELL_TIERS:
        if buy_sell_ratio > threshold:
            points += pts
            anomalies.append(f"{label}: {buy_sell_ratio:.1f} buys per sell in 24h")
            break
    for threshold, pts, label in _WASH_TIERS:
        if wash_score > threshold:
            points += pts
            anomalies.append(f"{label}: 24h volume is {wash_score:.0f}x liquidity")
            break

    if points >= 5:
        level: BotActivity = "High"
    elif points >= 2:
        level = "Medium"
    else:
        level = "Low"
    return level, anomalies


def _best_pair(pairs: list[dict[str, Any]]) -> dict[str, Any]:
    return max(pairs, key=lambda p: safe_float((p.get("liquidity") or {}).get("usd")) or 0.0)


def build_market_snapshot(
    pair: dict[str, Any], now: Optional[datetime] = None
) -> MarketSnapshot:
    """Turn one DexScreener pair dict into a ``MarketSnapshot``."""
    now = now or datetime.now(tz=timezone.utc)
    liquidity = safe_float((pair.get("liquidity") or {}).get("usd")) or 0.0
    mcap = safe_float(pair.get("marketCap")) or safe_float(pair.get("fdv")) or 0.0
    volume = safe_float((pair.get("volume") or {}).get("h24")) or 0.0
    txns = (pair.get("txns") or {}).get("h24") or {}
    buys = int(safe_float(txns.get("buys")) or 0)
    sells_raw = safe_float(txns.get("sells"))
    # Missing sell count is read as a single sell rather than zero
    sells = int(sells_raw) if sells_raw is not None else 1

    age_hours = 0.0
    created_ms = safe_float(pair.get("pairCreatedAt"))
    if created_ms:
        created = datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc)
        age_hours = max((now - created).total_seconds() / 3600, 0.0)

    liquidity_ratio = (liquidity / mcap * 100) if mcap > 0 else 0.0
    buy_sell_ratio = (buys / sells) if sells > 0 else float(buys)
    wash_score = (volume / liquidity) if liquidity > 0 else 0.0
    bot_activity, anomalies = classify_bot_activity(liquidity_ratio, buy_sell_ratio, wash_score)

    return MarketSnapshot(
        pair_address=pair.get("pairAddress", ""),
        dex_id=pair.get("dexId", ""),
        liquidity_usd=liquidity,
        market_cap_usd=mcap,
        volume_24h_usd=volume,
        buys_24h=buys,
        sells_24h=sells,
        price_change_24h=safe_float((pair.get("priceChange") or {}).get("h24")) or 0.0,
        age_hours=age_hours,
        liquidity_ratio=liquidity_ratio,
        buy_sell_ratio=buy_sell_ratio,
        wash_score=wash_score,
        bot_activity=bot_activity,
        anomalies=anomalies,
    )


def extract_socials(mint: str, pairs: list[dict[str, Any]]) -> TokenSocials:
    """Name, symbol, image and links from the best pair."""
    if not pairs:
        return TokenSocials()
    best = _best_pair(pairs)
    base = best.get("baseToken") or {}
    quote = best.get("quoteToken") or {}
    token = quote if quote.get("address") == mint else base
    info = best.get("info") or {}

    websites = [w for w in (info.get("websites") or []) if w.get("url")]
    website = next(
        (w["url"] for w in websites if "web" in (w.get("label") or "").lower()),
        websites[0]["url"] if websites else None,
    )
    socials = {
        (s.get("type") or "").lower(): s.get("url")
        for s in (info.get("socials") or [])
        if s.get("url")
    }
    return TokenSocials(
        name=token.get("name", ""),
        symbol=token.get("symbol", ""),
        image_url=info.get("imageUrl"),
        website=website,
        twitter=socials.get("twitter"),
        telegram=socials.get("telegram"),
        discord=socials.get("discord"),
    )


async def fetch_market_evidence(
    dex: Any, mint: str, *, timeout: float = MARKET_TIMEOUT_SECONDS
) -> CollectorOutcome[MarketEvidence]:
    """Fetch pairs and build the snapshot.  No pairs is a valid empty answer."""
    try:
        pairs = await asyncio.wait_for(dex.get_token_pairs(mint), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("[market] DexScreener timed out after %.0fs for %s", timeout, mint[:12])
        return CollectorOutcome.failure("market timeout", value=MarketEvidence())
    except Exception as exc:
        logger.warning("[market] DexScreener failed for %s: %s", mint[:12], exc)
        return CollectorOutcome.failure("market unavailable", value=MarketEvidence())

    if pairs is None:
        return CollectorOutcome.failure("market unavailable", value=MarketEvidence())
    if not pairs:
        logger.info("[market] no trading pairs for %s", mint[:12])
        return CollectorOutcome.success(MarketEvidence())

    try:
        evidence = MarketEvidence(
            snapshot=build_market_snapshot(_best_pair(pairs)),
            socials=extract_socials(mint, pairs),
        )
    except Exception as exc:
        logger.warning("[market] malformed DexScreener payload for %s: %s", mint[:12], exc)
        return CollectorOutcome.failure("market unavailable", value=MarketEvidence())
    return CollectorOutcome.success(evidence)
