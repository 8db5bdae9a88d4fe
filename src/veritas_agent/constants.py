"""
Centralized constants for the Veritas investigator.

Protocol addresses and fixed vocabularies live here; tunable thresholds live
in ``config``.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Solana program addresses (immutable - part of the protocol)
# ---------------------------------------------------------------------------
PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBymtzbm"

# Names the jsonParsed encoding gives the two token programs
PARSED_TOKEN_PROGRAMS: frozenset[str] = frozenset({"spl-token", "spl-token-2022"})

# Inner-instruction types that create a new mint
MINT_INIT_INSTRUCTIONS: frozenset[str] = frozenset({"initializeMint", "initializeMint2"})

# ---------------------------------------------------------------------------
# Website classification
# ---------------------------------------------------------------------------
# Substring-matched against the lowercased URL; a hit means the "website" is
# a social profile or invite link, not something worth screenshotting.
REDIRECT_DOMAINS: tuple[str, ...] = (
    "x.com",
    "twitter.com",
    "t.me",
    "telegram.me",
    "discord.gg",
    "discord.com",
    "linktr.ee",
)

# Launchpad mints from pump.fun carry this vanity suffix
PUMP_FUN_MINT_SUFFIX = "pump"
