"""
Validator Accounts

The pool and the registry treat each operator's delegation account on the
staking network as an external service. ``ValidatorAccount`` is the contract
they rely on; ``InMemoryValidatorAccount`` is a faithful simulation of it used
for local runs and tests.

Delegation is share based. The account's exchange rate covers both active and
unbonding shares, so a slash reduces every outstanding claim in proportion,
including withdrawals that have been requested but not yet claimed.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from ..exceptions import (
    InsufficientAmount,
    InvalidState,
    OperatorNotFound,
    Unavailable,
    ZeroAmount,
)
from ..guard import Journaled
from ..logger import get_logger
from ..tokens.fungible import FungibleToken

logger = get_logger(__name__)

SLASHED_FUNDS_ADDRESS = "0x000000000000000000000000000000000000dEaD"


class ValidatorAccount(ABC):
    """External validator delegation account."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Address holding the account's funds."""

    # ── Pool-facing ───────────────────────────────────────────────────

    @abstractmethod
    def delegation_enabled(self) -> bool:
        """Whether the account currently accepts new delegation."""

    @abstractmethod
    def delegate(self, delegator: str, amount: int) -> int:
        """Pull ``amount`` from ``delegator`` and return the shares minted."""

    @abstractmethod
    def undelegate(self, delegator: str, share_amount: int) -> int:
        """Start unbonding ``share_amount`` shares and return the unbond nonce."""

    @abstractmethod
    def claim(self, delegator: str, nonce: int) -> int:
        """Settle an unbond, paying its current value to ``delegator``."""

    @abstractmethod
    def pending_claim_value(self, nonce: int) -> int:
        """Current value of an unbond that has not been claimed."""

    @abstractmethod
    def get_accrued_reward(self) -> int:
        """Rewards accrued to delegators and not yet withdrawn."""

    @abstractmethod
    def withdraw_rewards(self, recipient: str) -> int:
        """Pay all accrued delegator rewards to ``recipient``."""

    @abstractmethod
    def get_delegated_balance(self, delegator: str) -> int:
        """Value of ``delegator``'s active shares after slashing."""

    @abstractmethod
    def active_shares(self, delegator: str) -> int:
        """Number of active (not unbonding) shares held by ``delegator``."""

    @abstractmethod
    def amount_to_shares(self, amount: int) -> int:
        """Shares needed to cover ``amount``, rounded up."""

    @abstractmethod
    def shares_to_amount(self, shares: int) -> int:
        """Value of ``shares``, rounded down."""

    # ── Registry-facing ───────────────────────────────────────────────

    @abstractmethod
    def stake_for(self, owner: str, amount: int, aux_fee: int) -> None:
        """Lock the operator's own stake and auxiliary fee."""

    @abstractmethod
    def top_up_fee(self, owner: str, amount: int) -> None:
        """Add to the auxiliary fee balance."""

    @abstractmethod
    def restake(self, owner: str, amount: int, restake_rewards: bool) -> int:
        """Add to the operator's own stake; return the new self stake."""

    @abstractmethod
    def unstake(self) -> None:
        """Begin the operator's exit from the validator set."""

    @abstractmethod
    def unstake_claim(self, owner: str) -> int:
        """Return the operator's own stake after unstaking."""

    @abstractmethod
    def claim_fee(self, owner: str, accum_fee_amount: int, index: int, proof: bytes) -> int:
        """Return auxiliary fee balance to the operator."""

    @abstractmethod
    def update_commission_rate(self, rate: int) -> None:
        """Set the operator commission in basis points."""

    @abstractmethod
    def update_signer_pubkey(self, signer_pubkey: bytes) -> None:
        """Replace the consensus signer key."""

    @abstractmethod
    def slash(self, amount: int) -> int:
        """Apply a slashing penalty; return the amount actually slashed."""


class InMemoryValidatorAccount(Journaled, ValidatorAccount):
    """
    In-process validator account backed by a FungibleToken.

    Accounting is internal: tokens sent to the account address outside of
    delegate / stake calls do not change any balance reported here.
    """

    _journal_fields = (
        "_self_stake", "_fee_balance", "_delegated_value", "_total_shares",
        "_shares_of", "_unbonds", "_nonce", "_accrued_reward", "_operator_reward",
        "_commission_rate", "_signer_pubkey", "_delegation_enabled", "_unstaked",
        "_slashed_total",
    )

    def __init__(
        self,
        address: str,
        asset: FungibleToken,
        operator_id: int,
        signer_pubkey: bytes = b"",
        commission_rate: int = 0,
    ):
        self._address = address
        self.asset = asset
        self.operator_id = operator_id

        self._self_stake = 0
        self._fee_balance = 0
        self._delegated_value = 0
        self._total_shares = 0  # active + unbonding
        self._shares_of: Dict[str, int] = {}
        self._unbonds: Dict[int, Tuple[str, int]] = {}  # nonce -> (delegator, shares)
        self._nonce = 0
        self._accrued_reward = 0
        self._operator_reward = 0
        self._commission_rate = commission_rate
        self._signer_pubkey = signer_pubkey
        self._delegation_enabled = True
        self._unstaked = False
        self._slashed_total = 0

    @property
    def address(self) -> str:
        return self._address

    @property
    def self_stake(self) -> int:
        return self._self_stake

    @property
    def fee_balance(self) -> int:
        return self._fee_balance

    @property
    def commission_rate(self) -> int:
        return self._commission_rate

    @property
    def signer_pubkey(self) -> bytes:
        return self._signer_pubkey

    @property
    def slashed_total(self) -> int:
        return self._slashed_total

    # ── Share math ────────────────────────────────────────────────────

    def amount_to_shares(self, amount: int) -> int:
        if self._total_shares == 0 or self._delegated_value == 0:
            return amount
        return -(-amount * self._total_shares // self._delegated_value)

    def shares_to_amount(self, shares: int) -> int:
        if self._total_shares == 0:
            return 0
        return shares * self._delegated_value // self._total_shares

    def _shares_for_deposit(self, amount: int) -> int:
        if self._total_shares == 0 or self._delegated_value == 0:
            return amount
        return amount * self._total_shares // self._delegated_value

    # ── Pool-facing ───────────────────────────────────────────────────

    def delegation_enabled(self) -> bool:
        return self._delegation_enabled and not self._unstaked

    def set_delegation_enabled(self, enabled: bool) -> None:
        self._delegation_enabled = enabled
        logger.info(f"Validator account {self._address}: delegation {'enabled' if enabled else 'disabled'}")

    def delegate(self, delegator: str, amount: int) -> int:
        if amount <= 0:
            raise ZeroAmount("Delegation amount must be positive")
        if not self.delegation_enabled():
            raise Unavailable(f"Validator account {self._address} does not accept delegation")

        shares = self._shares_for_deposit(amount)
        if shares == 0:
            raise InsufficientAmount(f"Delegation of {amount} mints no shares")

        self.asset.transfer(delegator, self._address, amount)
        self._delegated_value += amount
        self._total_shares += shares
        self._shares_of[delegator] = self._shares_of.get(delegator, 0) + shares
        logger.debug(f"Delegated {amount} units to {self._address} ({shares} shares)")
        return shares

    def undelegate(self, delegator: str, share_amount: int) -> int:
        if share_amount <= 0:
            raise ZeroAmount("Share amount must be positive")
        held = self._shares_of.get(delegator, 0)
        if held < share_amount:
            raise InsufficientAmount(f"{delegator} holds {held} shares < {share_amount}")

        self._shares_of[delegator] = held - share_amount
        self._nonce += 1
        self._unbonds[self._nonce] = (delegator, share_amount)
        logger.debug(f"Unbonding {share_amount} shares from {self._address}, nonce {self._nonce}")
        return self._nonce

    def pending_claim_value(self, nonce: int) -> int:
        if nonce not in self._unbonds:
            raise InvalidState(f"Unknown unbond nonce {nonce}")
        return self.shares_to_amount(self._unbonds[nonce][1])

    def claim(self, delegator: str, nonce: int) -> int:
        entry = self._unbonds.get(nonce)
        if entry is None:
            raise InvalidState(f"Unknown unbond nonce {nonce}")
        owner, shares = entry
        if owner != delegator:
            raise InvalidState(f"Unbond {nonce} belongs to {owner}")

        amount = self.shares_to_amount(shares)
        del self._unbonds[nonce]
        self._delegated_value -= amount
        self._total_shares -= shares
        if amount:
            self.asset.transfer(self._address, delegator, amount)
        logger.debug(f"Claimed unbond {nonce} from {self._address}: {amount} units")
        return amount

    def get_accrued_reward(self) -> int:
        return self._accrued_reward

    def withdraw_rewards(self, recipient: str) -> int:
        amount = self._accrued_reward
        self._accrued_reward = 0
        if amount:
            self.asset.transfer(self._address, recipient, amount)
        return amount

    def get_delegated_balance(self, delegator: str) -> int:
        return self.shares_to_amount(self._shares_of.get(delegator, 0))

    def active_shares(self, delegator: str) -> int:
        return self._shares_of.get(delegator, 0)

    # ── Registry-facing ───────────────────────────────────────────────

    def stake_for(self, owner: str, amount: int, aux_fee: int) -> None:
        self.asset.transfer(owner, self._address, amount + aux_fee)
        self._self_stake += amount
        self._fee_balance += aux_fee
        self._unstaked = False

    def top_up_fee(self, owner: str, amount: int) -> None:
        self.asset.transfer(owner, self._address, amount)
        self._fee_balance += amount

    def restake(self, owner: str, amount: int, restake_rewards: bool) -> int:
        if self._unstaked:
            raise InvalidState("Cannot restake after unstaking")
        if amount:
            self.asset.transfer(owner, self._address, amount)
            self._self_stake += amount
        if restake_rewards:
            self._self_stake += self._operator_reward
            self._operator_reward = 0
        return self._self_stake

    def unstake(self) -> None:
        self._unstaked = True

    def unstake_claim(self, owner: str) -> int:
        if not self._unstaked:
            raise InvalidState("Operator has not unstaked")
        amount = self._self_stake
        self._self_stake = 0
        if amount:
            self.asset.transfer(self._address, owner, amount)
        return amount

    def claim_fee(self, owner: str, accum_fee_amount: int, index: int, proof: bytes) -> int:
        amount = min(accum_fee_amount, self._fee_balance)
        self._fee_balance -= amount
        if amount:
            self.asset.transfer(self._address, owner, amount)
        return amount

    def update_commission_rate(self, rate: int) -> None:
        self._commission_rate = rate

    def update_signer_pubkey(self, signer_pubkey: bytes) -> None:
        self._signer_pubkey = signer_pubkey

    # ── Network events ────────────────────────────────────────────────

    def accrue_reward(self, source: str, amount: int) -> None:
        """Credit delegator rewards funded by ``source``."""
        self.asset.transfer(source, self._address, amount)
        self._accrued_reward += amount

    def accrue_operator_reward(self, source: str, amount: int) -> None:
        """Credit rewards earned by the operator's own stake."""
        self.asset.transfer(source, self._address, amount)
        self._operator_reward += amount

    def slash(self, amount: int) -> int:
        slashed = min(amount, self._delegated_value)
        if slashed <= 0:
            return 0
        self._delegated_value -= slashed
        self._slashed_total += slashed
        self.asset.transfer(self._address, SLASHED_FUNDS_ADDRESS, slashed)
        logger.warning(
            f"Validator account {self._address} (operator #{self.operator_id}) "
            f"slashed {slashed} units"
        )
        return slashed

    def __repr__(self) -> str:
        return (
            f"InMemoryValidatorAccount({self._address}, value={self._delegated_value}, "
            f"shares={self._total_shares})"
        )


AccountBuilder = Callable[[str, FungibleToken, int, bytes, int], ValidatorAccount]


class ValidatorAccountFactory:
    """
    Creates validator accounts when operators stake and resolves them by
    reference afterwards. Registry records hold only the reference string.
    """

    def __init__(self, asset: FungibleToken, builder: Optional[AccountBuilder] = None):
        self.asset = asset
        self._builder = builder or InMemoryValidatorAccount
        self._accounts: Dict[str, ValidatorAccount] = {}
        self._counter = 0

    def create(
        self,
        operator_id: int,
        owner: str,
        signer_pubkey: bytes,
        commission_rate: int = 0,
    ) -> ValidatorAccount:
        self._counter += 1
        seed = f"{operator_id}:{owner}:{self._counter}".encode()
        address = "0x" + hashlib.blake2b(seed, digest_size=20).hexdigest()
        account = self._builder(address, self.asset, operator_id, signer_pubkey, commission_rate)
        self._accounts[address] = account
        logger.info(f"Validator account {address} created for operator #{operator_id}")
        return account

    def get(self, ref: str) -> ValidatorAccount:
        try:
            return self._accounts[ref]
        except KeyError:
            raise OperatorNotFound(f"No validator account at {ref}") from None

    def accounts(self) -> List[ValidatorAccount]:
        return list(self._accounts.values())

    # The account objects themselves snapshot their own state.
    def snapshot(self) -> dict:
        return {"_accounts": dict(self._accounts), "_counter": self._counter}

    def restore(self, state: dict) -> None:
        self._accounts = state["_accounts"]
        self._counter = state["_counter"]

    def journal_participants(self) -> list:
        return [self] + [a for a in self._accounts.values() if isinstance(a, Journaled)]
