"""Tests for ledger facts, LP-owner filtering and the creator profile."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import CREATOR, MINT, OTHER_WALLET, mint_account
from veritas_agent.errors import LEDGER_UNAVAILABLE, NOT_AN_SPL_TOKEN, TOKEN_NOT_FOUND, AssetNotFoundError
from veritas_agent.ledger_service import (
    build_holder_distribution,
    derive_creator_profile,
    fetch_holder_distribution,
    fetch_onchain_facts,
    is_likely_lp_owner,
    parse_mint_account,
)
from veritas_agent.models import HolderDistribution, HolderEntry, OnChainFacts
from veritas_agent.utils import b58encode

ON_CURVE_WALLET = b58encode(bytes.fromhex("58" + "66" * 31))
PDA_OWNER = b58encode(b"\xff" * 32)


def _accounts(*ui_amounts: float) -> list[dict]:
    return [
        {"address": f"Acct{i}", "uiAmountString": str(amount), "decimals": 6}
        for i, amount in enumerate(ui_amounts)
    ]


# ---------------------------------------------------------------------------
# Mint account
# ---------------------------------------------------------------------------

class TestParseMintAccount:

    def test_parsed_mint(self):
        facts = parse_mint_account(MINT, mint_account(mint_authority=CREATOR, supply="5000000", decimals=6))
        assert facts.mint_authority == CREATOR
        assert facts.freeze_authority is None
        assert facts.raw_supply == 5_000_000
        assert facts.supply == 5.0
        assert facts.creator_address == CREATOR

    def test_token_2022(self):
        facts = parse_mint_account(MINT, mint_account(program="spl-token-2022"))
        assert facts.token_program == "spl-token-2022"

    def test_creator_falls_back_to_freeze_authority(self):
        facts = parse_mint_account(MINT, mint_account(freeze_authority=OTHER_WALLET))
        assert facts.creator_address == OTHER_WALLET

    def test_missing_account(self):
        with pytest.raises(AssetNotFoundError) as exc_info:
            parse_mint_account(MINT, None)
        assert exc_info.value.message == TOKEN_NOT_FOUND

    def test_raw_data_is_not_a_token(self):
        with pytest.raises(AssetNotFoundError) as exc_info:
            parse_mint_account(MINT, {"data": ["AAAA", "base64"]})
        assert exc_info.value.message == NOT_AN_SPL_TOKEN

    def test_token_account_is_not_a_mint(self):
        account = mint_account()
        account["data"]["parsed"]["type"] = "account"
        with pytest.raises(AssetNotFoundError):
            parse_mint_account(MINT, account)

    def test_other_program(self):
        with pytest.raises(AssetNotFoundError):
            parse_mint_account(MINT, mint_account(program="stake"))


class TestFetchOnchainFacts:

    @pytest.mark.asyncio
    async def test_reads_value(self):
        rpc = AsyncMock()
        rpc.get_account_info.return_value = {"context": {}, "value": mint_account()}
        facts = await fetch_onchain_facts(rpc, MINT)
        assert facts.mint == MINT

    @pytest.mark.asyncio
    async def test_unreachable_rpc(self):
        rpc = AsyncMock()
        rpc.get_account_info.return_value = None
        with pytest.raises(AssetNotFoundError) as exc_info:
            await fetch_onchain_facts(rpc, MINT)
        assert exc_info.value.message == LEDGER_UNAVAILABLE


# ---------------------------------------------------------------------------
# LP owner heuristic
# ---------------------------------------------------------------------------

class TestIsLikelyLpOwner:

    def test_no_owner(self):
        assert not is_likely_lp_owner(None)

    def test_wallet_on_curve(self):
        assert not is_likely_lp_owner(ON_CURVE_WALLET, allowlist=(), denylist=())

    def test_program_derived_owner(self):
        assert is_likely_lp_owner(PDA_OWNER, allowlist=(), denylist=())

    def test_allowlist_wins(self):
        assert not is_likely_lp_owner(PDA_OWNER, allowlist={PDA_OWNER}, denylist={PDA_OWNER})

    def test_denylist(self):
        assert is_likely_lp_owner(ON_CURVE_WALLET, allowlist=(), denylist={ON_CURVE_WALLET})

    def test_undecodable_owner(self):
        assert not is_likely_lp_owner("not-base58!", allowlist=(), denylist=())


# ---------------------------------------------------------------------------
# Holder distribution
# ---------------------------------------------------------------------------

class TestBuildHolderDistribution:

    def test_percentages_use_supply(self):
        dist = build_holder_distribution(
            _accounts(100, 50), [ON_CURVE_WALLET, CREATOR], supply=1000, decimals=6,
            allowlist=(), denylist=(),
        )
        assert [h.percentage for h in dist.holders] == [10.0, 5.0]
        assert dist.top10_percentage == pytest.approx(15.0)
        assert not dist.lp_filtered

    def test_lp_owner_excluded(self):
        dist = build_holder_distribution(
            _accounts(600, 100), [PDA_OWNER, ON_CURVE_WALLET], supply=1000, decimals=6,
            allowlist=(), denylist=(),
        )
        assert [h.owner for h in dist.holders] == [ON_CURVE_WALLET]
        assert dist.top10_percentage == pytest.approx(10.0)
        assert dist.lp_filtered

    def test_all_lp_keeps_unfiltered_list(self):
        dist = build_holder_distribution(
            _accounts(600), [PDA_OWNER], supply=1000, decimals=6, allowlist=(), denylist=(),
        )
        assert len(dist.holders) == 1
        assert dist.top10_percentage == pytest.approx(60.0)
        assert not dist.lp_filtered

    def test_zero_supply(self):
        dist = build_holder_distribution(
            _accounts(10), [ON_CURVE_WALLET], supply=0, decimals=6, allowlist=(), denylist=(),
        )
        assert dist.top10_percentage == 0.0

    def test_raw_amount_fallback(self):
        accounts = [{"address": "A", "amount": "2500000"}]
        dist = build_holder_distribution(
            accounts, [ON_CURVE_WALLET], supply=100, decimals=6, allowlist=(), denylist=(),
        )
        assert dist.holders[0].balance == 2.5


class TestFetchHolderDistribution:

    @pytest.mark.asyncio
    async def test_resolves_owners(self):
        rpc = AsyncMock()
        rpc.get_token_largest_accounts.return_value = _accounts(100, 50)
        rpc.get_account_owner.side_effect = [ON_CURVE_WALLET, CREATOR]
        facts = OnChainFacts(mint=MINT, supply=1000, decimals=6)

        outcome = await fetch_holder_distribution(rpc, facts)
        assert outcome.ok
        assert rpc.get_account_owner.await_count == 2
        assert {h.owner for h in outcome.value.holders} == {ON_CURVE_WALLET, CREATOR}

    @pytest.mark.asyncio
    async def test_rpc_failure_degrades(self):
        rpc = AsyncMock()
        rpc.get_token_largest_accounts.return_value = None
        outcome = await fetch_holder_distribution(rpc, OnChainFacts(mint=MINT))
        assert outcome.degraded == "holders unavailable"
        assert outcome.value == HolderDistribution()

    @pytest.mark.asyncio
    async def test_exception_degrades(self):
        rpc = AsyncMock()
        rpc.get_token_largest_accounts.side_effect = RuntimeError("boom")
        outcome = await fetch_holder_distribution(rpc, OnChainFacts(mint=MINT))
        assert not outcome.ok


# ---------------------------------------------------------------------------
# Creator profile
# ---------------------------------------------------------------------------

class TestDeriveCreatorProfile:

    def _holders(self, *entries: HolderEntry) -> HolderDistribution:
        return HolderDistribution(holders=list(entries))

    def test_no_creator(self):
        profile = derive_creator_profile(OnChainFacts(mint=MINT, supply=1000), None)
        assert profile.address is None
        assert not profile.is_dumped

    def test_creator_matched_by_owner(self):
        facts = OnChainFacts(mint=MINT, mint_authority=CREATOR, supply=1000)
        holders = self._holders(HolderEntry(address="Acct0", owner=CREATOR, percentage=25.0))
        profile = derive_creator_profile(facts, holders)
        assert profile.percentage == 25.0
        assert profile.is_whale
        assert not profile.is_dumped

    def test_creator_matched_by_account_address(self):
        facts = OnChainFacts(mint=MINT, mint_authority=CREATOR, supply=1000)
        holders = self._holders(HolderEntry(address=CREATOR, owner=None, percentage=5.0))
        assert derive_creator_profile(facts, holders).percentage == 5.0

    def test_creator_absent_from_top_holders_is_dumped(self):
        facts = OnChainFacts(mint=MINT, mint_authority=CREATOR, supply=1000)
        holders = self._holders(HolderEntry(address="Acct0", owner=OTHER_WALLET, percentage=40.0))
        profile = derive_creator_profile(facts, holders)
        assert profile.is_dumped
        assert not profile.is_whale

    def test_zero_supply_is_not_dumped(self):
        facts = OnChainFacts(mint=MINT, mint_authority=CREATOR, supply=0)
        assert not derive_creator_profile(facts, None).is_dumped
