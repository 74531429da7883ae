"""
Fungible Token Test Suite

Coverage:
  - transfer, approve, transfer_from
  - minter-gated mint / burn and supply accounting
  - events and serialisation
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from stakepool.exceptions import PermissionDenied
from stakepool.tokens.fungible import (
    ApprovalEvent,
    FungibleToken,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    TokenError,
    TransferEvent,
)


# ── Helpers ───────────────────────────────────────────────────────────

FAUCET = "0xfaucet"
ALICE = "0xalice"
BOB = "0xbob"


def make_token(**kwargs) -> FungibleToken:
    defaults = dict(name="Test Asset", symbol="TST", minters=(FAUCET,))
    defaults.update(kwargs)
    return FungibleToken(**defaults)


class TestDeploy:

    def test_basic_properties(self):
        token = make_token()
        assert token.name == "Test Asset"
        assert token.symbol == "TST"
        assert token.decimals == 18
        assert token.total_supply == 0

    def test_empty_name_rejected(self):
        with pytest.raises(TokenError):
            make_token(name="")

    def test_invalid_decimals(self):
        with pytest.raises(TokenError):
            make_token(decimals=19)


class TestSupply:

    def test_mint_and_burn(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 500)
        assert token.balance_of(ALICE) == 500
        assert token.total_supply == 500
        token.burn(FAUCET, ALICE, 200)
        assert token.balance_of(ALICE) == 300
        assert token.total_supply == 300

    def test_non_minter_rejected(self):
        token = make_token()
        with pytest.raises(PermissionDenied):
            token.mint(ALICE, ALICE, 1)

    def test_burn_more_than_balance(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 10)
        with pytest.raises(InsufficientBalanceError):
            token.burn(FAUCET, ALICE, 11)

    def test_minter_management(self):
        token = make_token()
        token.add_minter(FAUCET, BOB)
        assert token.is_minter(BOB)
        token.remove_minter(FAUCET, BOB)
        assert not token.is_minter(BOB)


class TestTransfers:

    def test_transfer(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 100)
        event = token.transfer(ALICE, BOB, 40)
        assert isinstance(event, TransferEvent)
        assert token.balance_of(ALICE) == 60
        assert token.balance_of(BOB) == 40
        assert event.to_dict()["amount"] == "40"

    def test_insufficient_balance(self):
        token = make_token()
        with pytest.raises(InsufficientBalanceError):
            token.transfer(ALICE, BOB, 1)

    def test_negative_amount(self):
        token = make_token()
        with pytest.raises(TokenError):
            token.transfer(ALICE, BOB, -1)

    def test_approve_and_transfer_from(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 100)
        approval = token.approve(ALICE, BOB, 30)
        assert isinstance(approval, ApprovalEvent)
        token.transfer_from(BOB, ALICE, BOB, 20)
        assert token.allowance(ALICE, BOB) == 10
        assert token.balance_of(BOB) == 20

    def test_transfer_from_over_allowance(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 100)
        token.approve(ALICE, BOB, 5)
        with pytest.raises(InsufficientAllowanceError):
            token.transfer_from(BOB, ALICE, BOB, 6)

    def test_snapshot_restore(self):
        token = make_token()
        token.mint(FAUCET, ALICE, 100)
        state = token.snapshot()
        assert state["_events"] == 1
        token.transfer(ALICE, BOB, 100)
        token.restore(state)
        assert token.balance_of(ALICE) == 100
        assert token.balance_of(BOB) == 0
        assert len(token.events) == 1
