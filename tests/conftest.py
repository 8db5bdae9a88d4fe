"""Shared test fixtures for the Veritas Agent test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from datetime import datetime, timezone

# Real 32-byte Solana addresses
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
PUMP_MINT = "2qEHjDLDLbuBgRYvsxhc5D6uDWAivNFZGan56P1tpump"
CREATOR = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now_utc():
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Ledger payloads
# ---------------------------------------------------------------------------

def mint_account(
    *,
    mint_authority: str | None = None,
    freeze_authority: str | None = None,
    supply: str = "1000000000000",
    decimals: int = 6,
    program: str = "spl-token",
) -> dict:
    """``getAccountInfo`` value for a jsonParsed mint."""
    return {
        "owner": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
        "data": {
            "program": program,
            "parsed": {
                "type": "mint",
                "info": {
                    "mintAuthority": mint_authority,
                    "freezeAuthority": freeze_authority,
                    "supply": supply,
                    "decimals": decimals,
                    "isInitialized": True,
                },
            },
        },
    }


@pytest.fixture
def clean_mint_account():
    return mint_account()


@pytest.fixture
def rug_mint_account():
    return mint_account(mint_authority=CREATOR, freeze_authority=CREATOR)


# ---------------------------------------------------------------------------
# DexScreener payloads
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_pairs():
    """Minimal DexScreener pairs response (two pools, one solana token)."""
    return [
        {
            "chainId": "solana",
            "dexId": "raydium",
            "pairAddress": "PAIR_MAIN",
            "baseToken": {"address": MINT, "name": "Bonk", "symbol": "BONK"},
            "quoteToken": {"address": "So11111111111111111111111111111111111111112", "symbol": "SOL"},
            "info": {
                "imageUrl": "https://example.com/bonk.png",
                "websites": [{"label": "Website", "url": "https://bonkcoin.com"}],
                "socials": [
                    {"type": "twitter", "url": "https://twitter.com/bonk_inu"},
                    {"type": "telegram", "url": "https://t.me/bonk"},
                ],
            },
            "marketCap": 850000000,
            "liquidity": {"usd": 15000000},
            "volume": {"h24": 30000000},
            "txns": {"h24": {"buys": 5000, "sells": 4000}},
            "priceChange": {"h24": 2.5},
            "pairCreatedAt": 1672531200000,
        },
        {
            "chainId": "solana",
            "dexId": "orca",
            "pairAddress": "PAIR_SMALL",
            "baseToken": {"address": MINT, "name": "Bonk", "symbol": "BONK"},
            "info": {},
            "marketCap": 850000000,
            "liquidity": {"usd": 5000000},
            "volume": {"h24": 1000000},
            "txns": {"h24": {"buys": 100, "sells": 100}},
            "pairCreatedAt": 1672531200000,
        },
    ]
