"""
Operator Registry Types

Core data types for the operator registry: lifecycle status, the operator
record, aggregate counters and registry events.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, Optional

from ..exceptions import InvalidState


class OperatorStatus(IntEnum):
    """Operator lifecycle status."""
    ACTIVE = 0            # Registered, not yet staked
    STAKED = 1            # Validating, eligible for delegation
    UNSTAKED = 2          # Exit started, funds still locked
    UNSTAKED_CLAIMED = 3  # Own stake returned to the operator
    EXIT = 4              # Force-exited by an administrator
    JAILED = 5            # Penalised, no new delegation


_VALID_TRANSITIONS: Dict[OperatorStatus, set] = {
    OperatorStatus.ACTIVE:           {OperatorStatus.STAKED, OperatorStatus.EXIT},
    OperatorStatus.STAKED:           {OperatorStatus.UNSTAKED, OperatorStatus.JAILED,
                                      OperatorStatus.EXIT},
    OperatorStatus.JAILED:           {OperatorStatus.UNSTAKED, OperatorStatus.EXIT},
    OperatorStatus.UNSTAKED:         {OperatorStatus.UNSTAKED_CLAIMED, OperatorStatus.ACTIVE,
                                      OperatorStatus.EXIT},
    # Terminal states, no further transitions
    OperatorStatus.UNSTAKED_CLAIMED: set(),
    OperatorStatus.EXIT:             set(),
}

TERMINAL_STATUSES = frozenset(s for s, allowed in _VALID_TRANSITIONS.items() if not allowed)


def can_transition(old: OperatorStatus, new: OperatorStatus) -> bool:
    return new in _VALID_TRANSITIONS.get(old, set())


@dataclass
class OperatorRecord:
    """
    A validator operator registered with the pool.

    Attributes:
        id: Sequential identifier, never reused
        name: Display name
        reward_address: Receives the operator's share of rewards
        owner_address: Authenticates operator self-service calls
        signer_pubkey: 64-byte consensus signer public key
        status: Current lifecycle status
        validator_account_ref: Address of the validator account, set once staked
        commission_rate: Basis points; None falls back to the registry default
        max_delegation_limit: Upper bound on pool delegation to this operator
        stake_amount: Operator's own stake
        aux_fee: Auxiliary fee balance paid by the operator
        status_updated_epoch: Epoch of the last status change
    """
    id: int
    name: str
    reward_address: str
    owner_address: str
    signer_pubkey: bytes
    status: OperatorStatus = OperatorStatus.ACTIVE
    validator_account_ref: Optional[str] = None
    commission_rate: Optional[int] = None
    max_delegation_limit: int = 0
    stake_amount: int = 0
    aux_fee: int = 0
    status_updated_epoch: int = 0
    created_at: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_account(self) -> bool:
        return self.validator_account_ref is not None

    def transition_to(self, new_status: OperatorStatus, epoch: int = 0) -> OperatorStatus:
        """
        Move to ``new_status`` if the lifecycle table allows it.

        Returns:
            The previous status.

        Raises:
            InvalidState: If the transition is not allowed.
        """
        if not can_transition(self.status, new_status):
            allowed = _VALID_TRANSITIONS.get(self.status, set())
            raise InvalidState(
                f"Operator #{self.id}: cannot transition from {self.status.name} → "
                f"{new_status.name}. Allowed: {sorted(s.name for s in allowed)}"
            )
        old = self.status
        self.status = new_status
        self.status_updated_epoch = epoch
        return old

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'reward_address': self.reward_address,
            'owner_address': self.owner_address,
            'signer_pubkey': self.signer_pubkey.hex(),
            'status': self.status.name,
            'validator_account_ref': self.validator_account_ref,
            'commission_rate': self.commission_rate,
            'max_delegation_limit': str(self.max_delegation_limit),
            'stake_amount': str(self.stake_amount),
            'aux_fee': str(self.aux_fee),
            'status_updated_epoch': self.status_updated_epoch,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperatorRecord':
        return cls(
            id=int(data['id']),
            name=data['name'],
            reward_address=data['reward_address'],
            owner_address=data['owner_address'],
            signer_pubkey=bytes.fromhex(data['signer_pubkey']),
            status=OperatorStatus[data['status']],
            validator_account_ref=data.get('validator_account_ref'),
            commission_rate=data.get('commission_rate'),
            max_delegation_limit=int(data.get('max_delegation_limit', 0)),
            stake_amount=int(data.get('stake_amount', 0)),
            aux_fee=int(data.get('aux_fee', 0)),
            status_updated_epoch=int(data.get('status_updated_epoch', 0)),
            created_at=data.get('created_at', time.time()),
        )


_STATUS_COUNTERS: Dict[OperatorStatus, str] = {
    OperatorStatus.ACTIVE: 'active',
    OperatorStatus.STAKED: 'staked',
    OperatorStatus.UNSTAKED: 'unstaked',
    OperatorStatus.UNSTAKED_CLAIMED: 'claimed',
    OperatorStatus.JAILED: 'jailed',
    OperatorStatus.EXIT: 'exit',
}


@dataclass
class RegistryStats:
    """Aggregate operator counters, one per status plus the total."""
    total: int = 0
    active: int = 0
    staked: int = 0
    unstaked: int = 0
    claimed: int = 0
    jailed: int = 0
    exit: int = 0

    def count_for(self, status: OperatorStatus) -> int:
        return getattr(self, _STATUS_COUNTERS[status])

    def on_added(self, status: OperatorStatus = OperatorStatus.ACTIVE) -> None:
        self.total += 1
        self._bump(status, 1)

    def on_removed(self, status: OperatorStatus) -> None:
        self.total -= 1
        self._bump(status, -1)

    def on_transition(self, old: OperatorStatus, new: OperatorStatus) -> None:
        self._bump(old, -1)
        self._bump(new, 1)

    def _bump(self, status: OperatorStatus, delta: int) -> None:
        name = _STATUS_COUNTERS[status]
        value = getattr(self, name) + delta
        if value < 0:
            raise InvalidState(f"Counter '{name}' would go negative")
        setattr(self, name, value)

    @classmethod
    def recount(cls, records: Iterable[OperatorRecord]) -> 'RegistryStats':
        """Rebuild the counters from scratch by folding over ``records``."""
        stats = cls()
        for record in records:
            stats.on_added(record.status)
        return stats

    def to_dict(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'active': self.active,
            'staked': self.staked,
            'unstaked': self.unstaked,
            'claimed': self.claimed,
            'jailed': self.jailed,
            'exit': self.exit,
        }


@dataclass(frozen=True)
class OperatorEvent:
    """Registry event, emitted on every operator change."""
    kind: str
    operator_id: int
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.kind,
            'operatorId': self.operator_id,
            'details': dict(self.details),
            'timestamp': self.timestamp,
        }
