"""
Operator Registry

Keeps the record of every validator operator the pool may delegate to and
drives each operator through its lifecycle:

    ACTIVE ──stake──▶ STAKED ──unstake──▶ UNSTAKED ──unstake_claim──▶ UNSTAKED_CLAIMED
                         │                  ▲   │
                         └──jail──▶ JAILED ─┘   └──unjail──▶ ACTIVE
    any non-terminal ──stop / exit / remove──▶ EXIT

RegistryStats is updated in the same step as every status change and can be
checked against a full recount at any time.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional

from ..config import RegistryConfig
from ..constants import BASIS_POINTS, VALIDATOR_PUBKEY_LENGTH
from ..epoch import EpochOracle
from ..exceptions import (
    ContractPaused,
    EmptyProof,
    InsufficientAmount,
    InvalidOperatorData,
    InvalidParameter,
    InvalidState,
    OperatorNotFound,
    PermissionDenied,
    Unavailable,
    ZeroAmount,
    ZeroFee,
    ZeroIndex,
)
from ..guard import Journaled, atomic
from ..logger import get_logger
from ..tokens.fungible import FungibleToken
from .account import ValidatorAccount, ValidatorAccountFactory
from .types import (
    OperatorEvent,
    OperatorRecord,
    OperatorStatus,
    RegistryStats,
)

logger = get_logger(__name__)


class OperatorRegistry(Journaled):
    """
    Registry of validator operators.

    Every mutating method takes the authenticated ``caller`` address first.
    Administrative methods require ``caller`` to be in the admin set; operator
    self-service methods resolve the operator from ``caller`` as owner.
    """

    _journal_fields = (
        "_records", "_owner_index", "_used_addresses", "_stats", "_next_id",
        "_admins", "_paused", "config",
    )
    _journal_logs = ("_events",)

    def __init__(
        self,
        admin: str,
        asset: FungibleToken,
        account_factory: ValidatorAccountFactory,
        epoch_oracle: EpochOracle,
        config: Optional[RegistryConfig] = None,
        address: str = "operator-registry",
    ):
        self.address = address
        self.asset = asset
        self.account_factory = account_factory
        self.epoch_oracle = epoch_oracle
        self.config = config or RegistryConfig()
        self.config.validate()

        self._records: Dict[int, OperatorRecord] = {}
        self._owner_index: Dict[str, int] = {}
        self._used_addresses: set = set()
        self._stats = RegistryStats()
        self._next_id = 1
        self._admins: set = {admin}
        self._paused = False
        self._events: List[OperatorEvent] = []
        self._stake_pool = None
        self._entered = False

        logger.info(f"Operator registry {address} deployed (version {self.config.version})")

    def journal_participants(self) -> list:
        participants = [self, self.asset] + self.account_factory.journal_participants()
        if self._stake_pool is not None:
            participants += self._stake_pool.journal_participants()
        return participants

    # ══════════════════════════════════════════════════════════════════
    #  GUARDS
    # ══════════════════════════════════════════════════════════════════

    def _require_admin(self, caller: str) -> None:
        if caller not in self._admins:
            raise PermissionDenied(f"{caller} is not a registry admin")

    def _require_not_paused(self) -> None:
        if self._paused:
            raise ContractPaused("Operator registry is paused")

    def _get(self, operator_id: int) -> OperatorRecord:
        record = self._records.get(operator_id)
        if record is None:
            raise OperatorNotFound(f"Operator #{operator_id} does not exist")
        return record

    def _get_by_owner(self, owner: str) -> OperatorRecord:
        operator_id = self._owner_index.get(owner)
        if operator_id is None:
            raise OperatorNotFound(f"No operator owned by {owner}")
        return self._records[operator_id]

    def _require_status(self, record: OperatorRecord, *statuses: OperatorStatus) -> None:
        if record.status not in statuses:
            raise InvalidState(
                f"Operator #{record.id} is {record.status.name}, "
                f"expected {' or '.join(s.name for s in statuses)}"
            )

    def _account(self, record: OperatorRecord) -> ValidatorAccount:
        if record.validator_account_ref is None:
            raise InvalidState(f"Operator #{record.id} has no validator account")
        return self.account_factory.get(record.validator_account_ref)

    @staticmethod
    def _check_rate(rate: int) -> None:
        if not 0 <= rate <= BASIS_POINTS:
            raise InvalidParameter(f"Commission rate must be 0-{BASIS_POINTS} basis points, got {rate}")

    def _transition(self, record: OperatorRecord, new_status: OperatorStatus) -> None:
        old = record.transition_to(new_status, self.epoch_oracle.current_epoch())
        self._stats.on_transition(old, new_status)
        self._emit("StatusChanged", record.id, old=old.name, new=new_status.name)
        logger.info(f"Operator #{record.id} ({record.name}): {old.name} → {new_status.name}")

    def _emit(self, kind: str, operator_id: int, **details: Any) -> None:
        self._events.append(OperatorEvent(kind, operator_id, details))

    # ══════════════════════════════════════════════════════════════════
    #  OPERATOR LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def add_operator(
        self,
        caller: str,
        name: str,
        reward_address: str,
        signer_pubkey: bytes,
    ) -> int:
        """
        Register a new operator in ACTIVE.

        The reward address doubles as the owner address used to authenticate
        the operator's own calls. No validator account is created yet.

        Returns:
            The new operator id.

        Raises:
            PermissionDenied: Caller is not an admin.
            InvalidOperatorData: Bad pubkey, empty or already used address.
        """
        self._require_admin(caller)
        self._require_not_paused()
        if len(signer_pubkey) != VALIDATOR_PUBKEY_LENGTH:
            raise InvalidOperatorData(
                f"Invalid public key: expected {VALIDATOR_PUBKEY_LENGTH} bytes, got {len(signer_pubkey)}"
            )
        if not reward_address:
            raise InvalidOperatorData("Invalid reward address")
        if reward_address in self._used_addresses:
            raise InvalidOperatorData(f"Address already used: {reward_address}")

        operator_id = self._next_id
        self._next_id += 1
        record = OperatorRecord(
            id=operator_id,
            name=name,
            reward_address=reward_address,
            owner_address=reward_address,
            signer_pubkey=bytes(signer_pubkey),
            max_delegation_limit=self.config.default_max_delegation_limit,
            status_updated_epoch=self.epoch_oracle.current_epoch(),
        )
        self._records[operator_id] = record
        self._owner_index[reward_address] = operator_id
        self._used_addresses.add(reward_address)
        self._stats.on_added(OperatorStatus.ACTIVE)

        self._emit("AddOperator", operator_id, name=name, reward_address=reward_address)
        logger.info(f"Operator #{operator_id} ({name}) added, reward address {reward_address}")
        return operator_id

    @atomic
    def stake(self, caller: str, amount: int, aux_fee: int) -> str:
        """
        Stake the caller's operator: ACTIVE → STAKED.

        The validator account is created on first stake and reused after an
        unjail. ``amount + aux_fee`` is moved from the owner into it.

        Returns:
            The validator account reference.
        """
        self._require_not_paused()
        if amount <= 0 or amount < self.config.min_stake_amount:
            raise InsufficientAmount(
                f"Invalid amount: {amount} (minimum {self.config.min_stake_amount})"
            )
        if aux_fee <= 0 or aux_fee < self.config.min_aux_fee:
            raise InsufficientAmount(
                f"Invalid auxiliary fee: {aux_fee} (minimum {self.config.min_aux_fee})"
            )

        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.ACTIVE)

        if record.validator_account_ref is None:
            account = self.account_factory.create(
                record.id,
                record.owner_address,
                record.signer_pubkey,
                self.get_commission_rate(record.id),
            )
            record.validator_account_ref = account.address
        else:
            account = self._account(record)

        account.stake_for(caller, amount, aux_fee)
        record.stake_amount += amount
        record.aux_fee += aux_fee
        self._transition(record, OperatorStatus.STAKED)

        self._emit("StakeOperator", record.id, amount=amount, aux_fee=aux_fee)
        return record.validator_account_ref

    @atomic
    def unstake(self, caller: str) -> None:
        """Begin the operator's exit: STAKED → UNSTAKED. Funds stay locked."""
        self._require_not_paused()
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.STAKED)

        self._account(record).unstake()
        self._transition(record, OperatorStatus.UNSTAKED)

    @atomic
    def unstake_claim(self, caller: str) -> int:
        """Return the operator's own stake: UNSTAKED → UNSTAKED_CLAIMED."""
        self._require_not_paused()
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.UNSTAKED)

        amount = self._account(record).unstake_claim(caller)
        record.stake_amount = 0
        self._transition(record, OperatorStatus.UNSTAKED_CLAIMED)
        self._emit("UnstakeClaim", record.id, amount=amount)
        return amount

    @atomic
    def unjail(self, caller: str) -> None:
        """Re-admit an unstaked operator: UNSTAKED → ACTIVE."""
        self._require_not_paused()
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.UNSTAKED)
        if not self.config.allow_unjail:
            raise Unavailable("Unjail is disabled")

        self._transition(record, OperatorStatus.ACTIVE)

    @atomic
    def jail_operator(self, caller: str, operator_id: int) -> None:
        """Penalise a staked operator: STAKED → JAILED."""
        self._require_admin(caller)
        record = self._get(operator_id)
        self._require_status(record, OperatorStatus.STAKED)

        self._transition(record, OperatorStatus.JAILED)
        logger.warning(f"Operator #{operator_id} jailed by {caller}")

    @atomic
    def release_operator(self, caller: str, operator_id: int) -> None:
        """Release a jailed operator into UNSTAKED, from where it may unjail."""
        self._require_admin(caller)
        record = self._get(operator_id)
        self._require_status(record, OperatorStatus.JAILED)

        self._account(record).unstake()
        self._transition(record, OperatorStatus.UNSTAKED)

    @atomic
    def top_up_for_fee(self, caller: str, amount: int) -> None:
        self._require_not_paused()
        if amount <= 0:
            raise ZeroFee("Invalid auxiliary fee: 0")
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.STAKED)

        self._account(record).top_up_fee(caller, amount)
        record.aux_fee += amount
        self._emit("TopUpFee", record.id, amount=amount)

    @atomic
    def claim_fee(self, caller: str, index: int, accum_fee_amount: int, proof: bytes) -> int:
        """
        Recover the auxiliary fee of an unstaked operator.

        Returns:
            The amount paid back to the owner.
        """
        self._require_not_paused()
        if not proof:
            raise EmptyProof("Empty proof")
        if index == 0:
            raise ZeroIndex("Invalid index: 0")
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.UNSTAKED)

        amount = self._account(record).claim_fee(caller, accum_fee_amount, index, proof)
        record.aux_fee -= amount
        self._emit("ClaimFee", record.id, amount=amount)
        return amount

    @atomic
    def restake(self, caller: str, amount: int, restake_rewards: bool) -> int:
        """
        Add to a staked operator's own stake.

        Returns:
            The operator's new self stake.
        """
        self._require_not_paused()
        if not self.config.allow_restake:
            raise Unavailable("Restake is disabled")
        if amount == 0 and not restake_rewards:
            raise ZeroAmount("Amount is ZERO")
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.STAKED)

        new_stake = self._account(record).restake(caller, amount, restake_rewards)
        record.stake_amount = new_stake
        self._emit("RestakeOperator", record.id, amount=amount, restake_rewards=restake_rewards)
        return new_stake

    # ══════════════════════════════════════════════════════════════════
    #  FORCED EXIT AND REMOVAL
    # ══════════════════════════════════════════════════════════════════

    def _pull_delegation(self, record: OperatorRecord) -> None:
        if record.has_account and self._stake_pool is not None:
            self._stake_pool.withdraw_total_delegated(self.address, record.validator_account_ref)

    def _force_exit(self, record: OperatorRecord, caller: str) -> None:
        if record.is_terminal:
            return
        previous = record.status
        self._transition(record, OperatorStatus.EXIT)
        logger.warning(f"Operator #{record.id} forced to EXIT by {caller} (was {previous.name})")

        if previous in (OperatorStatus.STAKED, OperatorStatus.JAILED) and record.has_account:
            self._account(record).unstake()
        # unstaked operators keep the pool's delegation until it is pulled here
        self._pull_delegation(record)

    @atomic
    def stop_operator(self, caller: str, operator_id: int) -> None:
        """Force an operator to EXIT and pull the pool's delegation out of it."""
        self._require_admin(caller)
        record = self._get(operator_id)
        if record.is_terminal:
            raise InvalidState(f"Operator #{operator_id} is already {record.status.name}")
        self._force_exit(record, caller)
        self._emit("StopOperator", operator_id)

    @atomic
    def exit_node_operator(self, caller: str, operator_id: int) -> None:
        """Like stop_operator, but may also be called by the operator's owner."""
        record = self._get(operator_id)
        if caller != record.owner_address:
            self._require_admin(caller)
        if record.is_terminal:
            raise InvalidState(f"Operator #{operator_id} is already {record.status.name}")
        self._force_exit(record, caller)
        self._emit("ExitNodeOperator", operator_id)

    @atomic
    def remove_operator(self, caller: str, operator_id: int) -> None:
        """Force EXIT if needed and delete the record. Ids are never reused."""
        self._require_admin(caller)
        record = self._get(operator_id)
        self._force_exit(record, caller)
        self._pull_delegation(record)

        del self._records[operator_id]
        self._owner_index.pop(record.owner_address, None)
        self._used_addresses.discard(record.owner_address)
        self._used_addresses.discard(record.reward_address)
        self._stats.on_removed(record.status)

        self._emit("RemoveOperator", operator_id)
        logger.info(f"Operator #{operator_id} removed")

    # ══════════════════════════════════════════════════════════════════
    #  OPERATOR SELF-SERVICE
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def set_operator_name(self, caller: str, name: str) -> None:
        self._require_not_paused()
        record = self._get_by_owner(caller)
        if record.is_terminal:
            raise InvalidState(f"Operator #{record.id} is {record.status.name}")
        record.name = name
        self._emit("NewName", record.id, name=name)

    @atomic
    def set_reward_address(self, caller: str, reward_address: str) -> None:
        self._require_not_paused()
        record = self._get_by_owner(caller)
        if record.is_terminal:
            raise InvalidState(f"Operator #{record.id} is {record.status.name}")
        if not reward_address:
            raise InvalidOperatorData("Invalid reward address")
        if reward_address in self._used_addresses:
            raise InvalidOperatorData(f"Address already used: {reward_address}")

        if record.reward_address != record.owner_address:
            self._used_addresses.discard(record.reward_address)
        record.reward_address = reward_address
        self._used_addresses.add(reward_address)
        self._emit("NewRewardAddress", record.id, reward_address=reward_address)

    @atomic
    def update_signer_pubkey(self, caller: str, signer_pubkey: bytes) -> None:
        self._require_not_paused()
        if len(signer_pubkey) != VALIDATOR_PUBKEY_LENGTH:
            raise InvalidOperatorData("Invalid public key")
        record = self._get_by_owner(caller)
        self._require_status(record, OperatorStatus.STAKED)

        self._account(record).update_signer_pubkey(bytes(signer_pubkey))
        record.signer_pubkey = bytes(signer_pubkey)
        self._emit("UpdateSignerPubkey", record.id)

    # ══════════════════════════════════════════════════════════════════
    #  ADMINISTRATION
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def update_operator_commission_rate(self, caller: str, operator_id: int, rate: int) -> None:
        self._require_admin(caller)
        self._check_rate(rate)
        record = self._get(operator_id)
        self._require_status(record, OperatorStatus.STAKED)

        self._account(record).update_commission_rate(rate)
        record.commission_rate = rate
        self._emit("UpdateCommissionRate", operator_id, rate=rate)
        logger.info(f"Operator #{operator_id} commission set to {rate} bps")

    @atomic
    def update_commission_rate(self, caller: str, rate: int) -> None:
        """Apply ``rate`` to every staked operator."""
        self._require_admin(caller)
        self._check_rate(rate)
        staked = [r for r in self._records.values() if r.status == OperatorStatus.STAKED]
        if not staked:
            raise InvalidState("No staked operator to update")
        for record in staked:
            self._account(record).update_commission_rate(rate)
            record.commission_rate = rate
            self._emit("UpdateCommissionRate", record.id, rate=rate)
        logger.info(f"Commission set to {rate} bps on {len(staked)} operators")

    @atomic
    def set_default_commission_rate(self, caller: str, rate: int) -> None:
        self._require_admin(caller)
        self._check_rate(rate)
        self.config.default_commission_rate = rate

    @atomic
    def set_default_max_delegation_limit(self, caller: str, limit: int) -> None:
        self._require_admin(caller)
        if limit < 0:
            raise InvalidParameter("Delegation limit cannot be negative")
        self.config.default_max_delegation_limit = limit

    @atomic
    def set_max_delegation_limit(self, caller: str, operator_id: int, limit: int) -> None:
        self._require_admin(caller)
        if limit < 0:
            raise InvalidParameter("Delegation limit cannot be negative")
        self._get(operator_id).max_delegation_limit = limit
        self._emit("SetMaxDelegationLimit", operator_id, limit=limit)

    @atomic
    def set_stake_amount_and_fees(self, caller: str, min_stake_amount: int, min_aux_fee: int) -> None:
        self._require_admin(caller)
        if min_stake_amount < 0 or min_aux_fee < 0:
            raise InvalidParameter("Minimums cannot be negative")
        self.config.min_stake_amount = min_stake_amount
        self.config.min_aux_fee = min_aux_fee

    @atomic
    def set_allow_unjail(self, caller: str, allowed: bool) -> None:
        self._require_admin(caller)
        self.config.allow_unjail = allowed

    @atomic
    def set_allow_restake(self, caller: str, allowed: bool) -> None:
        self._require_admin(caller)
        self.config.allow_restake = allowed

    @atomic
    def set_version(self, caller: str, version: str) -> None:
        self._require_admin(caller)
        self.config.version = version

    @atomic
    def pause(self, caller: str) -> None:
        self._require_admin(caller)
        self._paused = True
        logger.warning(f"Operator registry paused by {caller}")

    @atomic
    def unpause(self, caller: str) -> None:
        self._require_admin(caller)
        self._paused = False
        logger.info(f"Operator registry unpaused by {caller}")

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

    def set_stake_pool(self, caller: str, stake_pool) -> None:
        self._require_admin(caller)
        self._stake_pool = stake_pool
        logger.info(f"Stake pool attached to registry: {getattr(stake_pool, 'address', stake_pool)}")

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def stake_pool(self):
        return self._stake_pool

    @property
    def events(self) -> List[OperatorEvent]:
        return list(self._events)

    def is_admin(self, address: str) -> bool:
        return address in self._admins

    def get_operator(self, operator_id: int) -> OperatorRecord:
        """Return a copy of an operator record."""
        return copy.copy(self._get(operator_id))

    def get_operator_by_owner(self, owner: str) -> OperatorRecord:
        return copy.copy(self._get_by_owner(owner))

    def get_operator_ids(self) -> List[int]:
        return sorted(self._records)

    def operators(self, statuses: Optional[Iterable[OperatorStatus]] = None) -> List[OperatorRecord]:
        """Copies of all records, optionally filtered by status, in id order."""
        wanted = set(statuses) if statuses is not None else None
        return [
            copy.copy(self._records[i])
            for i in sorted(self._records)
            if wanted is None or self._records[i].status in wanted
        ]

    def get_validator_account(self, ref: str) -> ValidatorAccount:
        return self.account_factory.get(ref)

    def get_commission_rate(self, operator_id: int) -> int:
        record = self._get(operator_id)
        if record.commission_rate is None:
            return self.config.default_commission_rate
        return record.commission_rate

    def get_stats(self) -> RegistryStats:
        return copy.copy(self._stats)

    def recount_stats(self) -> RegistryStats:
        return RegistryStats.recount(self._records.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'version': self.config.version,
            'paused': self._paused,
            'stats': self._stats.to_dict(),
            'operators': [self._records[i].to_dict() for i in sorted(self._records)],
            'config': self.config.to_dict(),
        }

    def __repr__(self) -> str:
        return f"OperatorRegistry({self.address}, operators={self._stats.total})"
