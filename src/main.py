"""
Command line interface for the Veritas token investigator.

Usage::

    python src/main.py --mint <TOKEN_MINT> [--fast] [--json]
    python src/main.py --serve
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import os

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from veritas_agent.data_sources._clients import build_investigator, close_clients
from veritas_agent.errors import InvestigationError
from veritas_agent.models import InvestigationResult

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)


def _print_report(result: InvestigationResult) -> None:
    print("=" * 60)
    print("  Veritas Agent – Investigation")
    print("=" * 60)
    print(f"  Token        : {result.token_name} ({result.token_symbol})")
    print(f"  Mint         : {result.token_address}")
    print(f"  Lane         : {result.lane}")
    print(f"  Trust score  : {result.trust_score}/100")
    print(f"  Verdict      : {result.verdict}")
    if result.criminal_profile:
        print(f"  Profile      : {result.criminal_profile}")
    print("-" * 60)
    if result.summary:
        print(f"  {result.summary}")
    if result.score_penalties:
        print("  Penalties:")
        for p in result.score_penalties:
            print(f"    {p}")
    if result.lies:
        print("  Lies:")
        for lie in result.lies:
            print(f"    - {lie}")
    if result.degraded:
        print("  Unavailable:")
        for name, reason in result.degraded.items():
            print(f"    {name}: {reason}")
    print("=" * 60)


async def _run(mint: str, fast: bool, as_json: bool) -> int:
    """Async entry point."""
    investigator = build_investigator()
    try:
        if fast:
            result = await investigator.quick_scan(mint)
        else:
            result = await investigator.investigate(mint)
    except InvestigationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_clients()

    if as_json:
        print(result.model_dump_json(indent=2))
    else:
        _print_report(result)
    return 0


def _serve() -> None:
    import uvicorn

    from config import API_HOST, API_PORT

    uvicorn.run("veritas_agent.api:app", host=API_HOST, port=API_PORT)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Investigate a Solana token and print a trust verdict"
    )
    parser.add_argument("--mint", help="Mint address of the token to investigate")
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Run the fast on-chain-only scan (no AI, no screenshot)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Output result as raw JSON",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the HTTP API instead of running one investigation",
    )
    args = parser.parse_args(argv)

    if args.serve:
        _serve()
        return 0
    if not args.mint:
        parser.error("--mint is required unless --serve is given")
    return asyncio.run(_run(args.mint, args.fast, args.as_json))


if __name__ == "__main__":
    sys.exit(main())
