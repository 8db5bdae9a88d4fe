"""Tests for the CLI entry point (main.py)."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from conftest import MINT
from veritas_agent.errors import AssetNotFoundError
from veritas_agent.models import InvestigationResult

_MAIN = os.path.join(os.path.dirname(__file__), "..", "src", "main.py")


def _result(**overrides) -> InvestigationResult:
    values = dict(
        token_address=MINT, token_name="Bonk", token_symbol="BONK",
        trust_score=40, verdict="Caution", summary="Mixed signals.",
        score_penalties=["-20 audit risk score 501"],
        degraded={"visual": "screenshot timeout"},
        analyzed_at=datetime(2026, 5, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return InvestigationResult(**values)


@pytest.fixture
def investigator():
    inv = MagicMock()
    inv.investigate = AsyncMock(return_value=_result())
    inv.quick_scan = AsyncMock(return_value=_result(lane="fast"))
    with patch("main.build_investigator", return_value=inv), \
            patch("main.close_clients", new_callable=AsyncMock) as close:
        inv.close_clients = close
        yield inv


class TestCLI:

    def test_help_flag(self):
        """--help should print usage and exit 0."""
        result = subprocess.run(
            [sys.executable, _MAIN, "--help"],
            capture_output=True, text=True, timeout=30,
        )
        assert result.returncode == 0
        assert "--mint" in result.stdout
        assert "--fast" in result.stdout

    def test_missing_mint_flag(self):
        """Missing --mint should exit with error."""
        result = subprocess.run(
            [sys.executable, _MAIN],
            capture_output=True, text=True, timeout=30,
        )
        assert result.returncode != 0
        assert "mint" in result.stderr.lower()


class TestRun:

    def test_report(self, investigator, capsys):
        assert main.main(["--mint", MINT]) == 0
        out = capsys.readouterr().out
        assert "Trust score  : 40/100" in out
        assert "Verdict      : Caution" in out
        assert "-20 audit risk score 501" in out
        assert "visual: screenshot timeout" in out
        investigator.investigate.assert_awaited_once_with(MINT)
        investigator.close_clients.assert_awaited_once()

    def test_fast_json(self, investigator, capsys):
        assert main.main(["--mint", MINT, "--fast", "--json"]) == 0
        body = json.loads(capsys.readouterr().out)
        assert body["lane"] == "fast"
        assert body["token_address"] == MINT
        investigator.investigate.assert_not_called()

    def test_investigation_error(self, investigator, capsys):
        investigator.investigate.side_effect = AssetNotFoundError()
        assert main.main(["--mint", MINT]) == 1
        assert "Error: Token not found" in capsys.readouterr().err
        investigator.close_clients.assert_awaited_once()
