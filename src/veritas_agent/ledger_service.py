"""
Ledger facts and holder distribution.

``fetch_onchain_facts`` is the one mandatory collector: without a readable
SPL mint nothing else is meaningful, so its failures raise
``AssetNotFoundError``.  ``fetch_holder_distribution`` is best-effort and
returns a ``CollectorOutcome``.

Liquidity pools hold a large share of supply in accounts owned by program
derived addresses.  ``is_likely_lp_owner`` excludes those from the
concentration figure so a healthy pool does not read as a whale.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

from .constants import PARSED_TOKEN_PROGRAMS
from .errors import LEDGER_UNAVAILABLE, NOT_AN_SPL_TOKEN, TOKEN_NOT_FOUND, AssetNotFoundError
from .models import (
    CollectorOutcome,
    CreatorProfile,
    HolderDistribution,
    HolderEntry,
    OnChainFacts,
)
from .utils import b58decode_pubkey, is_on_ed25519_curve, safe_float
from config import (
    CREATOR_DUMPED_PCT,
    CREATOR_WHALE_PCT,
    LP_OWNER_ALLOWLIST,
    LP_OWNER_DENYLIST,
    MAX_CONCURRENT_RPC,
    TOP_HOLDERS_COUNT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mint account
# ---------------------------------------------------------------------------

def parse_mint_account(mint: str, account: Optional[dict[str, Any]]) -> OnChainFacts:
    """Resolve a jsonParsed ``getAccountInfo`` value into ``OnChainFacts``.

    Raises ``AssetNotFoundError`` when the account is missing or is anything
    other than a parsed mint of the classic or 2022 token program.
    """
    if account is None:
        raise AssetNotFoundError(TOKEN_NOT_FOUND)

    data = account.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("parsed"), dict):
        # Raw base64 data: some other program owns this account
        raise AssetNotFoundError(NOT_AN_SPL_TOKEN)

    program = data.get("program")
    parsed = data["parsed"]
    if program not in PARSED_TOKEN_PROGRAMS or parsed.get("type") != "mint":
        raise AssetNotFoundError(NOT_AN_SPL_TOKEN)

    info = parsed.get("info") or {}
    decimals = int(info.get("decimals") or 0)
    try:
        raw_supply = int(info.get("supply") or 0)
    except (TypeError, ValueError):
        raw_supply = 0

    return OnChainFacts(
        mint=mint,
        token_program=program,
        mint_authority=info.get("mintAuthority") or None,
        freeze_authority=info.get("freezeAuthority") or None,
        raw_supply=raw_supply,
        decimals=decimals,
        supply=raw_supply / (10 ** decimals),
    )


async def fetch_onchain_facts(rpc: Any, mint: str) -> OnChainFacts:
    """Read the mint account.  Any failure is fatal for the investigation."""
    envelope = await rpc.get_account_info(mint)
    if envelope is None:
        logger.error("[ledger] RPC unavailable while reading %s", mint[:12])
        raise AssetNotFoundError(LEDGER_UNAVAILABLE)
    return parse_mint_account(mint, envelope.get("value"))


# ---------------------------------------------------------------------------
# Liquidity-pool owner heuristic
# ---------------------------------------------------------------------------

def is_likely_lp_owner(
    owner: Optional[str],
    *,
    allowlist: Iterable[str] = LP_OWNER_ALLOWLIST,
    denylist: Iterable[str] = LP_OWNER_DENYLIST,
) -> bool:
    """Return True when *owner* probably belongs to a liquidity pool.

    Order of precedence:

    1. no owner known → False
    2. on the allowlist (``VERITAS_LP_OWNER_ALLOWLIST``) → False
    3. on the denylist (``VERITAS_LP_OWNER_DENYLIST``) → True
    4. not a decodable public key → False
    5. off the ed25519 curve, i.e. a program derived address → True
    """
    if not owner:
        return False
    if owner in allowlist:
        return False
    if owner in denylist:
        return True
    raw = b58decode_pubkey(owner)
    if raw is None:
        return False
    return not is_on_ed25519_curve(raw)


# ---------------------------------------------------------------------------
# Holder distribution
# ---------------------------------------------------------------------------

def _account_balance(account: dict[str, Any], decimals: int) -> float:
    ui = safe_float(account.get("uiAmountString")) or safe_float(account.get("uiAmount"))
    if ui is not None:
        return max(ui, 0.0)
    raw = safe_float(account.get("amount")) or 0.0
    return max(raw / (10 ** decimals), 0.0)


def build_holder_distribution(
    accounts: list[dict[str, Any]],
    owners: list[Optional[str]],
    supply: float,
    decimals: int,
    *,
    allowlist: Iterable[str] = LP_OWNER_ALLOWLIST,
    denylist: Iterable[str] = LP_OWNER_DENYLIST,
) -> HolderDistribution:
    """Pure part of the holder collector.

    Percentages all derive from the single *supply* figure.  LP-owned
    entries are dropped unless that would leave nothing, in which case the
    unfiltered list is kept.
    """
    entries: list[HolderEntry] = []
    for account, owner in zip(accounts, owners):
        balance = _account_balance(account, decimals)
        pct = (balance / supply * 100) if supply > 0 else 0.0
        entries.append(HolderEntry(
            address=account.get("address", ""),
            owner=owner,
            balance=balance,
            percentage=pct,
            is_likely_lp=is_likely_lp_owner(owner, allowlist=allowlist, denylist=denylist),
        ))

    kept = [e for e in entries if not e.is_likely_lp]
    lp_filtered = bool(kept) and len(kept) < len(entries)
    if not kept:
        kept = entries

    return HolderDistribution(
        holders=kept,
        top10_percentage=sum(e.percentage for e in kept[:10]),
        lp_filtered=lp_filtered,
    )


async def fetch_holder_distribution(
    rpc: Any, facts: OnChainFacts
) -> CollectorOutcome[HolderDistribution]:
    """Top holders with LP owners excluded; degraded to an empty set on failure."""
    try:
        accounts = await rpc.get_token_largest_accounts(facts.mint)
        if accounts is None:
            return CollectorOutcome.failure("holders unavailable", value=HolderDistribution())
        accounts = accounts[:TOP_HOLDERS_COUNT]

        sem = asyncio.Semaphore(MAX_CONCURRENT_RPC)

        async def _owner(address: str) -> Optional[str]:
            async with sem:
                return await rpc.get_account_owner(address)

        owners = await asyncio.gather(*(_owner(a.get("address", "")) for a in accounts))
        distribution = build_holder_distribution(
            accounts, list(owners), facts.supply, facts.decimals
        )
    except Exception as exc:
        logger.warning("[ledger] holder distribution failed for %s: %s", facts.mint[:12], exc)
        return CollectorOutcome.failure("holders unavailable", value=HolderDistribution())

    logger.debug(
        "[ledger] %s top10=%.1f%% (%d holders, lp_filtered=%s)",
        facts.mint[:12], distribution.top10_percentage,
        len(distribution.holders), distribution.lp_filtered,
    )
    return CollectorOutcome.success(distribution)


# ---------------------------------------------------------------------------
# Creator profile
# ---------------------------------------------------------------------------

def derive_creator_profile(
    facts: OnChainFacts, holders: Optional[HolderDistribution]
) -> CreatorProfile:
    """Creator holding and the dumped / whale flags.

    The creator's holding is matched against both the wallet owning each
    top account and the account address itself.
    """
    creator = facts.creator_address
    if not creator:
        return CreatorProfile()

    pct = 0.0
    for entry in (holders.holders if holders else []):
        if creator in (entry.owner, entry.address):
            pct += entry.percentage

    return CreatorProfile(
        address=creator,
        percentage=pct,
        is_dumped=pct < CREATOR_DUMPED_PCT and facts.supply > 0,
        is_whale=pct > CREATOR_WHALE_PCT,
    )
