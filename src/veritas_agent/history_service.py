"""
Creator history: how many tokens has this creator launched before?

Scans the creator's most recent signatures (newest first, bounded depth) for
transactions that go through the Pump.fun program and initialise a new SPL
mint in an inner instruction.  Best-effort: any failure yields an empty
history flagged as degraded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .constants import MINT_INIT_INSTRUCTIONS, PUMP_FUN_PROGRAM
from .models import CollectorOutcome, CreatedToken, CreatorHistory
from .utils import is_valid_address
from config import (
    HISTORY_SCAN_DEPTH,
    HISTORY_SIGNATURE_LIMIT,
    HISTORY_TIMEOUT_SECONDS,
    MAX_CONCURRENT_RPC,
    SERIAL_LAUNCHER_MIN_TOKENS,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER_CREATORS = frozenset({"", "unknown", "null", "none"})


def _account_keys(tx: dict[str, Any]) -> list[str]:
    keys = ((tx.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
    return [k.get("pubkey", "") if isinstance(k, dict) else str(k) for k in keys]


def _involves_program(tx: dict[str, Any], program_id: str) -> bool:
    if program_id in _account_keys(tx):
        return True
    instructions = ((tx.get("transaction") or {}).get("message") or {}).get("instructions") or []
    return any(ix.get("programId") == program_id for ix in instructions if isinstance(ix, dict))


def extract_created_mint(tx: dict[str, Any]) -> Optional[str]:
    """Return the mint initialised by a launchpad transaction, if any."""
    if not _involves_program(tx, PUMP_FUN_PROGRAM):
        return None
    inner_groups = (tx.get("meta") or {}).get("innerInstructions") or []
    for group in inner_groups:
        for ix in group.get("instructions") or []:
            parsed = ix.get("parsed")
            if (
                ix.get("program") == "spl-token"
                and isinstance(parsed, dict)
                and parsed.get("type") in MINT_INIT_INSTRUCTIONS
            ):
                mint = (parsed.get("info") or {}).get("mint")
                if mint:
                    return mint
    return None


async def fetch_creator_history(
    rpc: Any,
    creator: Optional[str],
    *,
    exclude_mint: Optional[str] = None,
    timeout: float = HISTORY_TIMEOUT_SECONDS,
) -> CollectorOutcome[CreatorHistory]:
    """Count the creator's earlier launches; *exclude_mint* is the token under
    investigation, which is not a *previous* token."""
    if not creator or creator.strip().lower() in _PLACEHOLDER_CREATORS or not is_valid_address(creator):
        return CollectorOutcome.success(CreatorHistory(creator_address=creator or None))

    try:
        tokens = await asyncio.wait_for(
            _scan(rpc, creator, exclude_mint), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning("[history] scan timed out after %.0fs for %s", timeout, creator[:12])
        return CollectorOutcome.failure("history timeout", value=CreatorHistory(creator_address=creator))
    except Exception as exc:
        logger.warning("[history] scan failed for %s: %s", creator[:12], exc)
        return CollectorOutcome.failure("history unavailable", value=CreatorHistory(creator_address=creator))

    if tokens is None:
        return CollectorOutcome.failure("history unavailable", value=CreatorHistory(creator_address=creator))

    logger.info("[history] %s launched %d earlier token(s)", creator[:12], len(tokens))
    return CollectorOutcome.success(CreatorHistory(
        creator_address=creator,
        previous_tokens=len(tokens),
        tokens=tokens,
        is_serial_launcher=len(tokens) >= SERIAL_LAUNCHER_MIN_TOKENS,
    ))


async def _scan(rpc: Any, creator: str, exclude_mint: Optional[str]) -> Optional[list[CreatedToken]]:
    signatures = await rpc.get_signatures_for_address(creator, limit=HISTORY_SIGNATURE_LIMIT)
    if signatures is None:
        return None

    window = [s for s in signatures[:HISTORY_SCAN_DEPTH] if s.get("signature") and not s.get("err")]
    sem = asyncio.Semaphore(MAX_CONCURRENT_RPC)

    async def _inspect(sig: dict[str, Any]) -> Optional[CreatedToken]:
        async with sem:
            tx = await rpc.get_transaction(sig["signature"])
        if not tx:
            return None
        mint = extract_created_mint(tx)
        if not mint:
            return None
        block_time = tx.get("blockTime") or sig.get("blockTime")
        return CreatedToken(
            mint=mint,
            created_at=datetime.fromtimestamp(block_time, tz=timezone.utc) if block_time else None,
            signature=sig["signature"],
        )

    found = await asyncio.gather(*(_inspect(s) for s in window))

    # gather keeps input order, so this stays newest-first
    seen: set[str] = set()
    tokens: list[CreatedToken] = []
    for token in found:
        if token is None or token.mint in seen or token.mint == exclude_mint:
            continue
        seen.add(token.mint)
        tokens.append(token)
    return tokens
