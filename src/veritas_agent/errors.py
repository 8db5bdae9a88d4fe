"""
Error taxonomy for investigations.

Only three failures ever reach the caller:

- ``ClientInputError`` – the subject identifier is malformed (no I/O done)
- ``AssetNotFoundError`` – the ledger has no such mint, or it is not an SPL token
- ``ReasoningFailure`` – the AI judgment could not be obtained

Degraded evidence (market, audit, history, screenshot) is never raised; it is
carried as ``CollectorOutcome.degraded`` so the orchestrator can continue.
"""

from __future__ import annotations


class InvestigationError(Exception):
    """Base class for errors surfaced to callers of the investigator."""

    #: Short message safe to show to end users.
    public_message: str = "Investigation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ClientInputError(InvestigationError):
    public_message = "Invalid Solana address format"


class AssetNotFoundError(InvestigationError):
    public_message = "Token not found on Solana — check the address"


class ReasoningFailure(InvestigationError):
    """The reasoning service errored, timed out or returned garbage.

    The detailed cause is kept on ``__cause__`` and in logs; callers only ever
    see the generic message.
    """

    public_message = "AI analysis failed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(self.public_message)
        self.detail = detail or ""


# Messages reused by the ledger boundary
TOKEN_NOT_FOUND = AssetNotFoundError.public_message
NOT_AN_SPL_TOKEN = "Not an SPL token — only Solana SPL tokens are supported"
LEDGER_UNAVAILABLE = "Could not reach the Solana ledger — try again shortly"
