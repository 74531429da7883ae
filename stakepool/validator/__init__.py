"""
StakePool Validator Module

Operator registry and the validator account contract it drives.

Components:
- OperatorRegistry: Operator records, lifecycle state machine and counters
- ValidatorAccount: Contract of an operator's delegation account
- InMemoryValidatorAccount: In-process simulation of a validator account
- ValidatorAccountFactory: Creates accounts at stake time, resolves references

Usage:
    from stakepool.validator import OperatorRegistry, ValidatorAccountFactory

    factory = ValidatorAccountFactory(asset)
    registry = OperatorRegistry(admin, asset, factory, epoch_oracle)
    operator_id = registry.add_operator(admin, "node-1", reward_address, pubkey)
"""

from .types import (
    OperatorStatus,
    OperatorRecord,
    RegistryStats,
    OperatorEvent,
    TERMINAL_STATUSES,
    can_transition,
)
from .account import (
    ValidatorAccount,
    InMemoryValidatorAccount,
    ValidatorAccountFactory,
    SLASHED_FUNDS_ADDRESS,
)
from .registry import OperatorRegistry

__all__ = [
    'OperatorStatus',
    'OperatorRecord',
    'RegistryStats',
    'OperatorEvent',
    'TERMINAL_STATUSES',
    'can_transition',
    'ValidatorAccount',
    'InMemoryValidatorAccount',
    'ValidatorAccountFactory',
    'SLASHED_FUNDS_ADDRESS',
    'OperatorRegistry',
]
