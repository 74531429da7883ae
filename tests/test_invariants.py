"""
Invariant Tests using Property-Based Testing

These tests drive the ledger, the registry and the pool through random
operation sequences and check the properties that must hold after every step:

  - ticket owner / approval indexes stay dense and consistent
  - registry status counters always match a full recount
  - terminal operator statuses never change
  - pooled value moves exactly with deposits and withdrawal requests
  - a pool whose shares are backed by nothing refuses new deposits
  - the share exchange rate never decreases without slashing
  - delegation plans respect budget and capacities
"""

import os
import sys

import pytest
from hypothesis import given, strategies as st, settings, assume

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from stakepool.config import PoolConfig, RegistryConfig
from stakepool.constants import UNIT
from stakepool.epoch import ManualEpochOracle
from stakepool.exceptions import InvalidState, StakePoolException, TooMuchToWithdraw
from stakepool.pool import StakePool, plan_delegation
from stakepool.tokens.fungible import FungibleToken
from stakepool.tokens.tickets import WithdrawalTicketLedger
from stakepool.validator import OperatorRegistry, ValidatorAccountFactory
from stakepool.validator.types import TERMINAL_STATUSES


# ── Helpers ───────────────────────────────────────────────────────────

ADMIN = "0xadmin"
FAUCET = "0xfaucet"
POOL = "0xpool"
HOLDERS = ["0xa", "0xb", "0xc", "0xd"]
USERS = ["0xalice", "0xbob", "0xcarol"]
PUBKEY = b"\x04" * 64
STAKE = 10 * UNIT
FEE = 20 * UNIT
DELAY = 5


def build(operators=0, registry_config=None):
    asset = FungibleToken("Staked Asset", "ASSET", minters=(FAUCET,))
    oracle = ManualEpochOracle(0)
    registry = OperatorRegistry(
        ADMIN, asset, ValidatorAccountFactory(asset), oracle, registry_config or RegistryConfig()
    )
    pool = StakePool(ADMIN, asset, registry, oracle, PoolConfig(withdrawal_delay_epochs=DELAY))
    registry.set_stake_pool(ADMIN, pool)

    for n in range(operators):
        owner = f"0xoperator{n}"
        registry.add_operator(ADMIN, f"node-{n}", owner, PUBKEY)
        asset.mint(FAUCET, owner, STAKE + FEE)
        registry.stake(owner, STAKE, FEE)
    return asset, oracle, registry, pool


def deposit(asset, pool, user, amount):
    asset.mint(FAUCET, user, amount)
    return pool.submit(user, amount)


# ══════════════════════════════════════════════════════════════════════
#  TICKET LEDGER
# ══════════════════════════════════════════════════════════════════════

ledger_ops = st.lists(
    st.tuples(
        st.sampled_from(["mint", "transfer", "approve", "clear", "burn"]),
        st.integers(min_value=0, max_value=len(HOLDERS) - 1),
        st.integers(min_value=0, max_value=50),
    ),
    max_size=60,
)


class TestTicketIndexInvariants:

    @given(ledger_ops)
    @settings(max_examples=150, deadline=None)
    def test_indexes_match_model(self, ops):
        """Enumeration lists always equal the owner and approval maps."""
        ledger = WithdrawalTicketLedger(owner=ADMIN, minter=POOL)
        owners = {}
        approvals = {}

        for kind, holder, pick in ops:
            target = HOLDERS[holder]
            if kind == "mint":
                owners[ledger.mint(POOL, target)] = target
                continue
            if not owners:
                continue

            ticket = sorted(owners)[pick % len(owners)]
            owner = owners[ticket]
            if kind == "transfer":
                if target == owner:
                    continue
                ledger.transfer(owner, owner, target, ticket)
                owners[ticket] = target
                approvals.pop(ticket, None)
            elif kind == "approve":
                if target == owner:
                    continue
                ledger.approve(owner, target, ticket)
                approvals[ticket] = target
            elif kind == "clear":
                ledger.approve(owner, "", ticket)
                approvals.pop(ticket, None)
            elif kind == "burn":
                ledger.burn(POOL, ticket)
                del owners[ticket]
                approvals.pop(ticket, None)

            assert ledger.verify_indexes()

        for address in HOLDERS:
            assert sorted(ledger.owned_tokens(address)) == sorted(
                t for t, o in owners.items() if o == address
            )
            assert sorted(ledger.approved_tokens(address)) == sorted(
                t for t, s in approvals.items() if s == address
            )
            assert ledger.balance_of(address) == len(ledger.owned_tokens(address))


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

registry_ops = st.lists(
    st.tuples(
        st.sampled_from([
            "add", "stake", "unstake", "unstake_claim", "jail", "release",
            "unjail", "stop", "exit", "remove", "restake",
        ]),
        st.integers(min_value=0, max_value=20),
    ),
    max_size=50,
)


class TestRegistryInvariants:

    @given(registry_ops)
    @settings(max_examples=150, deadline=None)
    def test_counters_match_recount(self, ops):
        asset, _, registry, _ = build(registry_config=RegistryConfig(allow_restake=True))
        added = 0

        for kind, pick in ops:
            before = {r.id: r.status for r in registry.operators()}
            try:
                if kind == "add":
                    registry.add_operator(ADMIN, f"node-{added}", f"0xowner{added}", PUBKEY)
                    added += 1
                elif before:
                    op = sorted(before)[pick % len(before)]
                    owner = registry.get_operator(op).owner_address
                    if kind == "stake":
                        asset.mint(FAUCET, owner, STAKE + FEE)
                        registry.stake(owner, STAKE, FEE)
                    elif kind == "unstake":
                        registry.unstake(owner)
                    elif kind == "unstake_claim":
                        registry.unstake_claim(owner)
                    elif kind == "jail":
                        registry.jail_operator(ADMIN, op)
                    elif kind == "release":
                        registry.release_operator(ADMIN, op)
                    elif kind == "unjail":
                        registry.unjail(owner)
                    elif kind == "stop":
                        registry.stop_operator(ADMIN, op)
                    elif kind == "exit":
                        registry.exit_node_operator(owner, op)
                    elif kind == "remove":
                        registry.remove_operator(ADMIN, op)
                    elif kind == "restake":
                        asset.mint(FAUCET, owner, STAKE)
                        registry.restake(owner, STAKE, False)
            except StakePoolException:
                pass

            assert registry.get_stats() == registry.recount_stats()
            after = {r.id: r.status for r in registry.operators()}
            for operator_id, status in before.items():
                if status in TERMINAL_STATUSES and operator_id in after:
                    assert after[operator_id] == status


# ══════════════════════════════════════════════════════════════════════
#  POOL
# ══════════════════════════════════════════════════════════════════════

pool_ops = st.lists(
    st.tuples(
        st.sampled_from([
            "submit", "delegate", "withdraw", "advance", "claim",
            "unstake", "exit", "remove", "claim_to_pool",
        ]),
        st.integers(min_value=0, max_value=len(USERS) - 1),
        st.integers(min_value=1, max_value=100),
    ),
    max_size=40,
)


def ready_tickets(pool, oracle, tickets):
    return [
        t for t in tickets
        if pool.get_request(t).claimable_at(DELAY) <= oracle.current_epoch()
    ]


class TestConservation:

    @given(st.integers(min_value=0, max_value=3), pool_ops)
    @settings(max_examples=100, deadline=None)
    def test_pooled_tracks_deposits_and_requests(self, operators, ops):
        """Without rewards or slashing every request is paid in full."""
        asset, oracle, registry, pool = build(operators)
        submitted = 0
        requested = 0
        pending = {}

        for kind, who, size in ops:
            user = USERS[who]
            operator_ids = registry.get_operator_ids()
            op = operator_ids[size % len(operator_ids)] if operator_ids else None
            if kind == "submit":
                deposit(asset, pool, user, size * UNIT)
                submitted += size * UNIT
            elif kind == "delegate":
                pool.delegate()
            elif kind == "withdraw":
                amount = pool.value_of(user) * size // 100
                if amount == 0:
                    continue
                try:
                    tickets = pool.request_withdraw(user, amount)
                except TooMuchToWithdraw:
                    continue
                for ticket in tickets:
                    pending[ticket] = (user, pool.get_ticket_value(ticket))
                requested += amount
            elif kind == "advance":
                oracle.advance(size)
            elif kind == "claim":
                for ticket in ready_tickets(pool, oracle, pending):
                    owner, value = pending.pop(ticket)
                    assert pool.claim_tokens(owner, ticket) == value
            elif kind == "claim_to_pool":
                owned = pool.ledger.owned_tokens(pool.address)
                for ticket in ready_tickets(pool, oracle, owned):
                    pool.claim_tokens_to_pool(ADMIN, ticket)
            elif op is not None:
                try:
                    if kind == "unstake":
                        registry.unstake(registry.get_operator(op).owner_address)
                    elif kind == "exit":
                        registry.exit_node_operator(ADMIN, op)
                    elif kind == "remove":
                        registry.remove_operator(ADMIN, op)
                except InvalidState:
                    pass

            assert pool.get_total_pooled() == submitted - requested

        oracle.advance(DELAY)
        paid = 0
        for ticket, (owner, value) in list(pending.items()):
            assert pool.claim_tokens(owner, ticket) == value
            paid += value

        assert pool.reserved_funds == 0
        assert pool.get_total_pooled() == submitted - requested
        assert sum(asset.balance_of(u) for u in USERS) == requested
        assert pool.share_token.total_supply == sum(pool.balance_of(u) for u in USERS)

    @given(
        st.integers(min_value=1, max_value=100),
        st.integers(min_value=1, max_value=100),
        st.booleans(),
    )
    @settings(max_examples=50, deadline=None)
    def test_total_slash_blocks_deposits(self, first, second, removed):
        asset, _, registry, pool = build(1)
        deposit(asset, pool, USERS[0], first * UNIT)
        pool.delegate()
        account = registry.get_validator_account(registry.get_operator(1).validator_account_ref)
        account.slash(first * UNIT)
        if removed:
            registry.remove_operator(ADMIN, 1)

        assert pool.get_total_pooled() == 0
        supply = pool.share_token.total_supply
        asset.mint(FAUCET, USERS[1], second * UNIT)
        with pytest.raises(InvalidState):
            pool.submit(USERS[1], second * UNIT)

        assert pool.share_token.total_supply == supply
        assert pool.balance_of(USERS[1]) == 0
        assert asset.balance_of(USERS[1]) == second * UNIT


class TestExchangeRate:

    @given(
        st.lists(st.integers(min_value=0, max_value=10 * UNIT), min_size=1, max_size=3),
        st.integers(min_value=0, max_value=10_000),
        st.integers(min_value=0, max_value=10_000),
    )
    @settings(max_examples=150, deadline=None)
    def test_rewards_never_lower_rate(self, rewards, commission, protocol_fee):
        asset, _, registry, pool = build(len(rewards))
        registry.update_commission_rate(ADMIN, commission)
        pool.set_protocol_fee(ADMIN, protocol_fee)
        deposit(asset, pool, USERS[0], 100 * UNIT)
        pool.delegate()

        for operator_id, amount in zip(registry.get_operator_ids(), rewards):
            if amount:
                asset.mint(FAUCET, FAUCET, amount)
                account = registry.get_validator_account(
                    registry.get_operator(operator_id).validator_account_ref
                )
                account.accrue_reward(FAUCET, amount)
        assume(sum(rewards) > 0)

        supply = pool.share_token.total_supply
        before = pool.get_total_pooled()
        report = pool.distribute_rewards()
        after = pool.get_total_pooled()

        assert pool.share_token.total_supply == supply
        assert after - before == report.rebuffered
        assert after >= before
        assert report.protocol_fee + report.operators_total + report.rebuffered == report.total
        assert report.total == sum(rewards)

    @given(
        st.integers(min_value=1, max_value=10 * UNIT),
        st.lists(
            st.tuples(
                st.sampled_from(["submit", "withdraw"]),
                st.integers(min_value=0, max_value=len(USERS) - 1),
                st.integers(min_value=1, max_value=100),
            ),
            max_size=25,
        ),
    )
    @settings(max_examples=100, deadline=None)
    def test_deposits_and_withdrawals_never_lower_rate(self, reward, ops):
        asset, _, registry, pool = build(1)
        deposit(asset, pool, USERS[0], 100 * UNIT)
        pool.delegate()
        asset.mint(FAUCET, FAUCET, reward)
        registry.get_validator_account(
            registry.get_operator(1).validator_account_ref
        ).accrue_reward(FAUCET, reward)
        pool.distribute_rewards()

        for kind, who, size in ops:
            user = USERS[who]
            supply_before = pool.share_token.total_supply
            pooled_before = pool.get_total_pooled()
            if kind == "submit":
                amount = size * UNIT // 7
                if pool.convert_asset_to_shares(amount) == 0:
                    continue
                deposit(asset, pool, user, amount)
            else:
                amount = pool.value_of(user) * size // 100
                if amount == 0:
                    continue
                pool.request_withdraw(user, amount)

            supply_after = pool.share_token.total_supply
            pooled_after = pool.get_total_pooled()
            if supply_before and supply_after:
                assert pooled_after * supply_before >= pooled_before * supply_after


class TestSlashingSettlement:

    @given(
        st.integers(min_value=1, max_value=100),
        st.integers(min_value=0, max_value=100),
    )
    @settings(max_examples=100, deadline=None)
    def test_claim_never_exceeds_request(self, request_pct, slash_pct):
        asset, oracle, registry, pool = build(1)
        deposit(asset, pool, USERS[0], 100 * UNIT)
        pool.delegate()
        tickets = pool.request_withdraw(USERS[0], request_pct * UNIT)

        account = registry.get_validator_account(registry.get_operator(1).validator_account_ref)
        account.slash(slash_pct * UNIT)
        oracle.advance(DELAY)

        for ticket in tickets:
            requested = pool.get_request(ticket).requested_amount
            value = pool.get_ticket_value(ticket)
            assert value <= requested
            assert pool.claim_tokens(USERS[0], ticket) == value


# ══════════════════════════════════════════════════════════════════════
#  DELEGATION PLAN
# ══════════════════════════════════════════════════════════════════════

class TestPlanDelegation:

    @given(
        st.dictionaries(
            st.integers(min_value=1, max_value=20),
            st.tuples(
                st.integers(min_value=0, max_value=10_000),
                st.integers(min_value=0, max_value=10_000),
            ),
            max_size=8,
        ),
        st.integers(min_value=0, max_value=100_000),
    )
    @settings(max_examples=300, deadline=None)
    def test_budget_and_capacity(self, operators, budget):
        balances = {i: b for i, (b, _) in operators.items()}
        capacities = {i: c for i, (_, c) in operators.items()}

        plan = plan_delegation(balances, capacities, budget)

        assert all(amount > 0 for amount in plan.values())
        assert all(plan[i] <= capacities[i] for i in plan)
        assert sum(plan.values()) == min(budget, sum(capacities.values()))

    @given(
        st.lists(st.integers(min_value=0, max_value=1_000), min_size=1, max_size=6),
        st.integers(min_value=0, max_value=10_000),
    )
    @settings(max_examples=200, deadline=None)
    def test_unbounded_capacity_levels_balances(self, levels, budget):
        """With room to spare, nobody ends more than one unit above a raised peer."""
        balances = {i + 1: b for i, b in enumerate(levels)}
        capacities = {i: 10**9 for i in balances}

        plan = plan_delegation(balances, capacities, budget)
        final = {i: balances[i] + plan.get(i, 0) for i in balances}

        raised = [final[i] for i in plan]
        if raised:
            assert max(raised) - min(raised) <= 1
            assert all(final[i] >= min(raised) for i in balances)
