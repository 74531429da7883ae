"""
Stake Pool

Accounting engine of the liquid staking pool.

Depositors submit the staked asset and receive pool shares at the current
exchange rate. The pool keeps undelegated asset in a buffer, delegates it
across staked operators, collects their rewards and splits them between the
protocol, the operators and the pool itself. Withdrawals burn shares
immediately and mint a ticket that can be claimed once the withdrawal delay
has passed.

Exchange rate:

    total_pooled = buffer + Σ delegated balances + Σ pool-held pending unbonds
    rate         = total_pooled / share supply      (1:1 while supply is zero)

Delegated balances are always read back from the validator accounts, so
slashing is reflected in the rate as soon as it happens.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from ..config import PoolConfig
from ..constants import BASIS_POINTS, POOL_SHARE_NAME, POOL_SHARE_SYMBOL
from ..epoch import EpochOracle
from ..exceptions import (
    BelowMinimumDistribution,
    ClaimDelayNotReached,
    ContractPaused,
    InsufficientAmount,
    InvalidParameter,
    InvalidState,
    PermissionDenied,
    ThresholdReached,
    TicketNotFound,
    TooMuchToWithdraw,
    ZeroAmount,
)
from ..guard import Journaled, atomic, require_idle
from ..logger import get_logger
from ..tokens.fungible import FungibleToken
from ..tokens.tickets import WithdrawalTicketLedger
from ..validator.account import ValidatorAccount
from ..validator.registry import OperatorRegistry
from ..validator.types import OperatorRecord, OperatorStatus
from .types import PoolEvent, RewardDistribution, WithdrawalRequest

logger = get_logger(__name__)

REWARD_STATUSES = (OperatorStatus.STAKED, OperatorStatus.UNSTAKED, OperatorStatus.JAILED)


def plan_delegation(
    balances: Dict[int, int],
    capacities: Dict[int, int],
    budget: int,
) -> Dict[int, int]:
    """
    Water-fill ``budget`` across operators, least-funded first.

    The lowest balances are raised together to the next balance level, each
    capped by its remaining capacity, until the budget runs out. Leftover
    units that cannot be split evenly go to the lowest ids first.

    Args:
        balances: Current delegated balance per operator id
        capacities: Additional amount each operator may still receive
        budget: Amount available to delegate

    Returns:
        Amount to delegate per operator id (only positive entries).
    """
    level = dict(balances)
    room = {i: capacities[i] for i in balances if capacities.get(i, 0) > 0}
    allocation: Dict[int, int] = {}
    remaining = budget

    while remaining > 0 and room:
        order = sorted(room, key=lambda i: (level[i], i))
        low = level[order[0]]
        group = [i for i in order if level[i] == low]
        higher = [level[i] for i in order if level[i] > low]

        step = min(room[i] for i in group)
        if higher:
            step = min(step, higher[0] - low)

        if step * len(group) <= remaining:
            shares = {i: step for i in group}
        else:
            each, extra = divmod(remaining, len(group))
            shares = {i: each + (1 if n < extra else 0) for n, i in enumerate(sorted(group))}

        for i, amount in shares.items():
            if amount <= 0:
                continue
            level[i] += amount
            room[i] -= amount
            allocation[i] = allocation.get(i, 0) + amount
            remaining -= amount
            if room[i] == 0:
                del room[i]

    return allocation


class StakePool(Journaled):
    """
    Liquid staking pool.

    Every mutating method is atomic and non-reentrant; views raise
    ``Unavailable`` while an operation is in progress.
    """

    _journal_fields = (
        "_total_buffered", "_reserved_funds", "_requests", "_admins", "_paused",
        "config",
    )
    _journal_logs = ("_events",)

    def __init__(
        self,
        admin: str,
        asset: FungibleToken,
        registry: OperatorRegistry,
        epoch_oracle: EpochOracle,
        config: Optional[PoolConfig] = None,
        ledger: Optional[WithdrawalTicketLedger] = None,
        address: str = "stake-pool",
    ):
        self.address = address
        self.asset = asset
        self.registry = registry
        self.epoch_oracle = epoch_oracle
        self.config = config or PoolConfig()
        self.config.validate()

        self.share_token = FungibleToken(POOL_SHARE_NAME, POOL_SHARE_SYMBOL, minters=(address,))
        self.ledger = ledger or WithdrawalTicketLedger(owner=admin, minter=address)

        self._total_buffered = 0
        self._reserved_funds = 0
        self._requests: Dict[int, WithdrawalRequest] = {}
        self._admins: set = {admin}
        self._paused = False
        self._events: List[PoolEvent] = []
        self._entered = False

        logger.info(f"Stake pool {address} deployed, share token {POOL_SHARE_SYMBOL}")

    def journal_participants(self) -> list:
        return (
            [self, self.share_token, self.ledger, self.asset]
            + self.registry.account_factory.journal_participants()
        )

    # ══════════════════════════════════════════════════════════════════
    #  GUARDS
    # ══════════════════════════════════════════════════════════════════

    def _require_admin(self, caller: str) -> None:
        if caller not in self._admins:
            raise PermissionDenied(f"{caller} is not a pool admin")

    def _require_not_paused(self) -> None:
        if self._paused:
            raise ContractPaused("Pausable: paused")

    def _get_request(self, ticket_id: int) -> WithdrawalRequest:
        request = self._requests.get(ticket_id)
        if request is None:
            raise TicketNotFound(f"No withdrawal request for ticket #{ticket_id}")
        return request

    def _require_claimable(self, request: WithdrawalRequest) -> None:
        epoch = self.epoch_oracle.current_epoch()
        ready_at = request.claimable_at(self.config.withdrawal_delay_epochs)
        if epoch < ready_at:
            raise ClaimDelayNotReached(
                f"Not able to claim yet: ticket #{request.ticket_id} claimable at epoch {ready_at}, "
                f"current epoch {epoch}"
            )

    def _emit(self, kind: str, account: str, amount: int = 0, ticket_id: Optional[int] = None) -> None:
        self._events.append(PoolEvent(kind, account, amount, ticket_id))

    # ══════════════════════════════════════════════════════════════════
    #  VALUATION
    # ══════════════════════════════════════════════════════════════════

    def _operator_accounts(self, statuses=None) -> List[Tuple[OperatorRecord, ValidatorAccount]]:
        return [
            (record, self.registry.get_validator_account(record.validator_account_ref))
            for record in self.registry.operators(statuses)
            if record.has_account
        ]

    def _total_delegated(self) -> int:
        return sum(
            account.get_delegated_balance(self.address)
            for _, account in self._operator_accounts()
        )

    def _pending_pool_claims(self) -> int:
        total = 0
        for ticket_id, request in self._requests.items():
            if request.is_validator_backed and self.ledger.owner_of(ticket_id) == self.address:
                account = self.registry.get_validator_account(request.validator_account_ref)
                total += account.pending_claim_value(request.validator_nonce)
        return total

    def _total_pooled(self) -> int:
        return self._total_buffered + self._total_delegated() + self._pending_pool_claims()

    def _asset_to_shares(self, amount: int) -> int:
        supply = self.share_token.total_supply
        pooled = self._total_pooled()
        if supply == 0:
            return amount
        if pooled == 0:
            return 0
        return amount * supply // pooled

    def _shares_to_asset(self, shares: int) -> int:
        supply = self.share_token.total_supply
        if supply == 0:
            return shares
        return shares * self._total_pooled() // supply

    # ══════════════════════════════════════════════════════════════════
    #  DEPOSITS AND DELEGATION
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def submit(self, caller: str, amount: int) -> int:
        """
        Deposit ``amount`` of the asset and mint pool shares to ``caller``.

        Returns:
            The number of shares minted.

        Raises:
            ZeroAmount: Amount is zero.
            ThresholdReached: The deposit would exceed the submit threshold.
            InvalidState: Shares are outstanding but the pool holds nothing.
        """
        self._require_not_paused()
        if amount <= 0:
            raise ZeroAmount("Invalid amount")

        pooled = self._total_pooled()
        if pooled == 0 and self.share_token.total_supply:
            raise InvalidState("Pool shares are outstanding but nothing backs them")
        if self.config.submit_handler_enabled and pooled + amount > self.config.submit_threshold:
            raise ThresholdReached(
                f"Submit threshold reached: {pooled} + {amount} > {self.config.submit_threshold}"
            )

        shares = self._asset_to_shares(amount)
        if shares == 0:
            raise InsufficientAmount(f"Deposit of {amount} is worth zero shares")

        self.asset.transfer(caller, self.address, amount)
        self.share_token.mint(self.address, caller, shares)
        self._total_buffered += amount

        self._emit("SubmitEvent", caller, amount)
        logger.info(f"Submit: {caller} deposited {amount} units for {shares} shares")
        return shares

    @atomic
    def delegate(self) -> Dict[int, int]:
        """
        Move the buffer into staked operators' validator accounts.

        Eligible operators are STAKED, accept delegation and sit below their
        delegation limit. The buffer is water-filled across them, least-funded
        first; whatever cannot be placed stays buffered.

        Returns:
            Amount delegated per operator id. Empty when nothing was moved.
        """
        self._require_not_paused()
        available = self._total_buffered
        if available <= 0 or available < self.config.delegation_lower_bound:
            logger.debug(f"Delegate skipped: buffer {available} below lower bound")
            return {}

        balances: Dict[int, int] = {}
        capacities: Dict[int, int] = {}
        accounts: Dict[int, ValidatorAccount] = {}
        for record, account in self._operator_accounts([OperatorStatus.STAKED]):
            if not account.delegation_enabled():
                continue
            balance = account.get_delegated_balance(self.address)
            capacity = record.max_delegation_limit - balance
            if capacity <= 0:
                continue
            balances[record.id] = balance
            capacities[record.id] = capacity
            accounts[record.id] = account

        if not accounts:
            logger.debug("Delegate skipped: no eligible operator")
            return {}

        plan = plan_delegation(balances, capacities, available)
        for operator_id in sorted(plan):
            amount = plan[operator_id]
            accounts[operator_id].delegate(self.address, amount)
            self._total_buffered -= amount
            self._emit("DelegateEvent", accounts[operator_id].address, amount)

        logger.info(
            f"Delegated {sum(plan.values())} units across {len(plan)} operators, "
            f"{self._total_buffered} units left in buffer"
        )
        return plan

    # ══════════════════════════════════════════════════════════════════
    #  REWARDS
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def distribute_rewards(self) -> RewardDistribution:
        """
        Collect accrued rewards from operators and split them.

        The protocol fee (``protocol_fee_rate`` of the total) goes to insurance
        and the DAO. The remainder is split evenly per contributing operator;
        each operator's reward address receives its commission of that slice
        and the rest, plus rounding dust, is re-buffered for the pool.

        Raises:
            BelowMinimumDistribution: Eligible rewards are below the minimum.
        """
        self._require_not_paused()
        report = RewardDistribution()

        contributors: List[Tuple[OperatorRecord, ValidatorAccount]] = []
        eligible = 0
        for record, account in self._operator_accounts(REWARD_STATUSES):
            reward = account.get_accrued_reward()
            if reward <= 0:
                continue
            if reward < self.config.reward_distribution_lower_bound:
                report.skipped[record.id] = reward
                continue
            contributors.append((record, account))
            eligible += reward

        if eligible == 0 or eligible < self.config.min_reward_distribution:
            raise BelowMinimumDistribution(
                f"Amount to distribute lower than minimum: {eligible} < "
                f"{self.config.min_reward_distribution}"
            )

        total = sum(account.withdraw_rewards(self.address) for _, account in contributors)
        report.total = total

        fee = total * self.config.protocol_fee_rate // BASIS_POINTS
        report.insurance = fee * self.config.insurance_fee_share // BASIS_POINTS
        report.dao = fee - report.insurance

        remainder = total - fee
        per_operator = remainder // len(contributors)
        pool_cut = remainder - per_operator * len(contributors)
        for record, _ in contributors:
            commission = per_operator * self.registry.get_commission_rate(record.id) // BASIS_POINTS
            report.operators[record.id] = commission
            pool_cut += per_operator - commission
            if commission:
                self.asset.transfer(self.address, record.reward_address, commission)

        if report.insurance:
            self.asset.transfer(self.address, self.config.insurance_address, report.insurance)
        if report.dao:
            self.asset.transfer(self.address, self.config.dao_address, report.dao)

        report.rebuffered = pool_cut
        self._total_buffered += pool_cut

        self._emit("DistributeRewardsEvent", self.address, total)
        logger.info(
            f"Distributed {total} units of rewards: insurance={report.insurance} "
            f"dao={report.dao} operators={report.operators_total} pool={pool_cut}"
        )
        return report

    # ══════════════════════════════════════════════════════════════════
    #  WITHDRAWALS
    # ══════════════════════════════════════════════════════════════════

    def _issue_ticket(self, owner: str, request: WithdrawalRequest) -> int:
        ticket_id = self.ledger.mint(self.address, owner)
        request.ticket_id = ticket_id
        self._requests[ticket_id] = request
        return ticket_id

    def _issue_buffer_ticket(self, owner: str, amount: int, epoch: int) -> int:
        self._total_buffered -= amount
        self._reserved_funds += amount
        return self._issue_ticket(
            owner,
            WithdrawalRequest(ticket_id=0, request_epoch=epoch, amount_from_buffer=amount,
                              requested_amount=amount),
        )

    def _issue_validator_ticket(
        self,
        owner: str,
        account: ValidatorAccount,
        shares: int,
        value: int,
        epoch: int,
    ) -> int:
        nonce = account.undelegate(self.address, shares)
        return self._issue_ticket(
            owner,
            WithdrawalRequest(
                ticket_id=0,
                request_epoch=epoch,
                validator_account_ref=account.address,
                validator_nonce=nonce,
                shares_at_request=shares,
                requested_amount=value,
            ),
        )

    @atomic
    def request_withdraw(self, caller: str, amount: int) -> List[int]:
        """
        Burn shares worth ``amount`` of the asset and mint withdrawal tickets.

        The buffer backs the whole request when it can. Otherwise the amount
        is drawn from operators in descending balance order, one ticket per
        operator, with any remainder taken from the buffer.

        Returns:
            Ids of the tickets minted to ``caller``.

        Raises:
            ZeroAmount: Amount is zero.
            TooMuchToWithdraw: Amount exceeds buffer plus delegated balances.
            InsufficientAmount: Caller does not hold enough shares.
        """
        self._require_not_paused()
        if amount <= 0:
            raise ZeroAmount("Invalid amount")

        sources = []
        for record, account in self._operator_accounts():
            balance = account.get_delegated_balance(self.address)
            if balance > 0:
                sources.append((balance, record.id, account))
        sources.sort(key=lambda s: (-s[0], s[1]))

        buffer = self._total_buffered
        capacity = buffer + sum(balance for balance, _, _ in sources)
        if amount > capacity:
            raise TooMuchToWithdraw(f"Too much to withdraw: {amount} > {capacity}")

        supply = self.share_token.total_supply
        pooled = self._total_pooled()
        shares = -(-amount * supply // pooled) if supply else 0
        held = self.share_token.balance_of(caller)
        if shares == 0 or held < shares:
            raise InsufficientAmount(f"{caller} holds {held} shares, {shares} needed")
        self.share_token.burn(self.address, caller, shares)

        epoch = self.epoch_oracle.current_epoch()
        tickets: List[int] = []
        if buffer >= amount:
            tickets.append(self._issue_buffer_ticket(caller, amount, epoch))
        else:
            remaining = amount
            for balance, _, account in sources:
                if remaining == 0:
                    break
                take = min(balance, remaining)
                active = account.active_shares(self.address)
                if take == balance:
                    unbond = active
                else:
                    unbond = min(account.amount_to_shares(take), active)
                    while unbond > 1 and account.shares_to_amount(unbond) > take:
                        unbond -= 1
                worth = account.shares_to_amount(unbond)
                tickets.append(self._issue_validator_ticket(caller, account, unbond, worth, epoch))
                remaining -= take
                if worth < take:
                    # rounding dust on a partial unbond comes out of the buffer when it can
                    remaining += min(take - worth, buffer - remaining)
            if remaining:
                tickets.append(self._issue_buffer_ticket(caller, remaining, epoch))

        for ticket_id in tickets:
            self._emit("RequestWithdrawEvent", caller, self._requests[ticket_id].requested_amount, ticket_id)
        logger.info(
            f"Withdrawal requested: {caller} burned {shares} shares for {amount} units, "
            f"tickets {tickets}"
        )
        return tickets

    def _settle(self, request: WithdrawalRequest) -> int:
        if request.is_validator_backed:
            account = self.registry.get_validator_account(request.validator_account_ref)
            return account.claim(self.address, request.validator_nonce)
        self._reserved_funds -= request.amount_from_buffer
        return request.amount_from_buffer

    @atomic
    def claim_tokens(self, caller: str, ticket_id: int) -> int:
        """
        Redeem a withdrawal ticket once its delay has passed.

        Buffer-backed tickets pay their fixed amount; validator-backed tickets
        pay whatever the unbond is worth now, after any slashing.

        Returns:
            The amount paid to ``caller``.
        """
        self._require_not_paused()
        request = self._get_request(ticket_id)
        if not self.ledger.is_approved_or_owner(caller, ticket_id):
            raise PermissionDenied(f"{caller} is not owner nor approved for ticket #{ticket_id}")
        self._require_claimable(request)

        amount = self._settle(request)
        self.ledger.burn(self.address, ticket_id)
        del self._requests[ticket_id]
        if amount:
            self.asset.transfer(self.address, caller, amount)

        self._emit("ClaimTokensEvent", caller, amount, ticket_id)
        logger.info(f"Claimed ticket #{ticket_id}: {amount} units paid to {caller}")
        return amount

    @atomic
    def claim_tokens_to_pool(self, caller: str, ticket_id: int) -> int:
        """
        Redeem a pool-owned ticket back into the buffer.

        Pool-owned tickets come from operators that were forced to exit.
        """
        self._require_not_paused()
        request = self._get_request(ticket_id)
        if self.ledger.owner_of(ticket_id) != self.address:
            raise PermissionDenied(f"Ticket #{ticket_id} is not owned by the pool")
        self._require_claimable(request)

        amount = self._settle(request)
        self.ledger.burn(self.address, ticket_id)
        del self._requests[ticket_id]
        self._total_buffered += amount

        self._emit("ClaimTotalDelegatedEvent", caller, amount, ticket_id)
        logger.info(f"Ticket #{ticket_id} claimed into buffer by {caller}: {amount} units")
        return amount

    @atomic
    def withdraw_total_delegated(self, caller: str, account_ref: str) -> Optional[int]:
        """
        Unbond all of the pool's shares in one validator account.

        Only the registry calls this, when it forces an operator out. The
        unbond is held as a pool-owned ticket and keeps counting towards the
        pooled value until claimed.

        Returns:
            The pool-owned ticket id, or None when nothing was delegated.
        """
        if caller != self.registry.address:
            raise PermissionDenied(f"{caller} is not the operator registry")

        account = self.registry.get_validator_account(account_ref)
        shares = account.active_shares(self.address)
        if shares == 0:
            return None

        value = account.get_delegated_balance(self.address)
        ticket_id = self._issue_validator_ticket(
            self.address, account, shares, value, self.epoch_oracle.current_epoch()
        )
        self._emit("WithdrawTotalDelegatedEvent", account_ref, value, ticket_id)
        logger.warning(f"Withdrew total delegation of {value} units from {account_ref}, ticket #{ticket_id}")
        return ticket_id

    # ══════════════════════════════════════════════════════════════════
    #  ADMINISTRATION
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def set_submit_threshold(self, caller: str, threshold: int) -> None:
        self._require_admin(caller)
        if threshold <= 0:
            raise InvalidParameter("Submit threshold must be positive")
        self.config.submit_threshold = threshold

    @atomic
    def flip_submit_handler(self, caller: str) -> bool:
        self._require_admin(caller)
        self.config.submit_handler_enabled = not self.config.submit_handler_enabled
        return self.config.submit_handler_enabled

    @atomic
    def set_delegation_lower_bound(self, caller: str, amount: int) -> None:
        self._require_admin(caller)
        if amount < 0:
            raise InvalidParameter("Lower bound cannot be negative")
        self.config.delegation_lower_bound = amount

    @atomic
    def set_reward_distribution_lower_bound(self, caller: str, amount: int) -> None:
        self._require_admin(caller)
        if amount < 0:
            raise InvalidParameter("Lower bound cannot be negative")
        self.config.reward_distribution_lower_bound = amount

    @atomic
    def set_min_reward_distribution(self, caller: str, amount: int) -> None:
        self._require_admin(caller)
        if amount < 0:
            raise InvalidParameter("Minimum cannot be negative")
        self.config.min_reward_distribution = amount

    @atomic
    def set_protocol_fee(self, caller: str, rate: int) -> None:
        self._require_admin(caller)
        if not 0 <= rate <= BASIS_POINTS:
            raise InvalidParameter(f"Protocol fee must be 0-{BASIS_POINTS} basis points")
        self.config.protocol_fee_rate = rate

    @atomic
    def set_insurance_fee_share(self, caller: str, share: int) -> None:
        self._require_admin(caller)
        if not 0 <= share <= BASIS_POINTS:
            raise InvalidParameter(f"Insurance share must be 0-{BASIS_POINTS} basis points")
        self.config.insurance_fee_share = share

    @atomic
    def set_withdrawal_delay(self, caller: str, epochs: int) -> None:
        self._require_admin(caller)
        if epochs < 0:
            raise InvalidParameter("Withdrawal delay cannot be negative")
        self.config.withdrawal_delay_epochs = epochs

    @atomic
    def set_dao_address(self, caller: str, address: str) -> None:
        self._require_admin(caller)
        if not address:
            raise InvalidParameter("DAO address cannot be empty")
        self.config.dao_address = address
        logger.info(f"DAO address set to {address}")

    @atomic
    def set_insurance_address(self, caller: str, address: str) -> None:
        self._require_admin(caller)
        if not address:
            raise InvalidParameter("Insurance address cannot be empty")
        self.config.insurance_address = address

    @atomic
    def toggle_pause(self, caller: str) -> bool:
        self._require_admin(caller)
        self._paused = not self._paused
        logger.warning(f"Stake pool {'paused' if self._paused else 'unpaused'} by {caller}")
        return self._paused

    @atomic
    def grant_admin(self, caller: str, address: str) -> None:
        self._require_admin(caller)
        self._admins.add(address)

    @atomic
    def revoke_admin(self, caller: str, address: str) -> None:
        self._require_admin(caller)
        if self._admins == {address}:
            raise InvalidState("Cannot revoke the last admin")
        self._admins.discard(address)

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def total_buffered(self) -> int:
        return self._total_buffered

    @property
    def reserved_funds(self) -> int:
        return self._reserved_funds

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def events(self) -> List[PoolEvent]:
        return list(self._events)

    def is_admin(self, address: str) -> bool:
        return address in self._admins

    def get_total_pooled(self) -> int:
        require_idle(self)
        return self._total_pooled()

    def get_total_stake_across_validators(self) -> int:
        require_idle(self)
        return self._total_delegated()

    def get_min_validator_balance(self) -> int:
        """Smallest delegated balance among staked operators (0 if none)."""
        require_idle(self)
        balances = [
            account.get_delegated_balance(self.address)
            for _, account in self._operator_accounts([OperatorStatus.STAKED])
        ]
        return min(balances, default=0)

    def get_ticket_value(self, ticket_id: int) -> int:
        """What a ticket would pay if claimed now, without claiming it."""
        require_idle(self)
        request = self._get_request(ticket_id)
        if request.is_validator_backed:
            account = self.registry.get_validator_account(request.validator_account_ref)
            return account.pending_claim_value(request.validator_nonce)
        return request.amount_from_buffer

    def get_request(self, ticket_id: int) -> WithdrawalRequest:
        require_idle(self)
        request = self._get_request(ticket_id)
        return WithdrawalRequest(**vars(request))

    def convert_asset_to_shares(self, amount: int) -> int:
        require_idle(self)
        return self._asset_to_shares(amount)

    def convert_shares_to_asset(self, shares: int) -> int:
        require_idle(self)
        return self._shares_to_asset(shares)

    def balance_of(self, address: str) -> int:
        return self.share_token.balance_of(address)

    def value_of(self, address: str) -> int:
        """Asset value of ``address``'s shares at the current rate."""
        return self.convert_shares_to_asset(self.share_token.balance_of(address))

    def exchange_rate(self) -> Decimal:
        """Asset per share (1 while there are no shares)."""
        require_idle(self)
        supply = self.share_token.total_supply
        if supply == 0:
            return Decimal(1)
        return Decimal(self._total_pooled()) / Decimal(supply)

    def to_dict(self) -> Dict[str, Any]:
        require_idle(self)
        return {
            'address': self.address,
            'paused': self._paused,
            'total_pooled': str(self._total_pooled()),
            'total_buffered': str(self._total_buffered),
            'reserved_funds': str(self._reserved_funds),
            'share_supply': str(self.share_token.total_supply),
            'exchange_rate': str(self.exchange_rate()),
            'pending_requests': [self._requests[t].to_dict() for t in sorted(self._requests)],
            'config': self.config.to_dict(),
        }

    def __repr__(self) -> str:
        return f"StakePool({self.address}, buffered={self._total_buffered}, requests={len(self._requests)})"
