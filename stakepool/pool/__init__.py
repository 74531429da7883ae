"""
StakePool Pool Module

- StakePool: Share mint/burn, delegation, reward split and delayed withdrawals
- WithdrawalRequest: Payload behind each withdrawal ticket
- RewardDistribution: Report returned by distribute_rewards()
"""

from .types import WithdrawalRequest, RewardDistribution, PoolEvent
from .stake_pool import StakePool, plan_delegation, REWARD_STATUSES

__all__ = [
    'StakePool',
    'plan_delegation',
    'REWARD_STATUSES',
    'WithdrawalRequest',
    'RewardDistribution',
    'PoolEvent',
]
