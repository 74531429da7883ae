"""
Token ledgers used by the staking engine.

- FungibleToken: balance ledger for the staked asset and the pool share
- WithdrawalTicketLedger: NFT-like tickets for pending redemptions
"""

from .fungible import (
    FungibleToken,
    TokenError,
    InsufficientBalanceError,
    InsufficientAllowanceError,
    TransferEvent,
    ApprovalEvent,
)
from .tickets import WithdrawalTicketLedger, TicketEvent

__all__ = [
    'FungibleToken',
    'TokenError',
    'InsufficientBalanceError',
    'InsufficientAllowanceError',
    'TransferEvent',
    'ApprovalEvent',
    'WithdrawalTicketLedger',
    'TicketEvent',
]
