"""
Stake Pool Types

Withdrawal request payloads, reward distribution reports and pool events.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class WithdrawalRequest:
    """
    Pending redemption attached to a withdrawal ticket.

    Exactly one backing is set:
        - buffer-backed: ``amount_from_buffer`` is paid as-is from reserved funds
        - validator-backed: ``validator_account_ref`` / ``validator_nonce`` identify
          an unbond whose value is read at claim time

    Attributes:
        ticket_id: Ticket that carries the claim
        request_epoch: Epoch the withdrawal was requested in
        amount_from_buffer: Fixed payout for buffer-backed requests
        validator_account_ref: Account the shares were unbonded from
        validator_nonce: Unbond nonce returned by the account
        shares_at_request: Account shares unbonded for this request
        requested_amount: Asset value the shares were worth when requested
    """
    ticket_id: int
    request_epoch: int
    amount_from_buffer: int = 0
    validator_account_ref: Optional[str] = None
    validator_nonce: int = 0
    shares_at_request: int = 0
    requested_amount: int = 0

    @property
    def is_validator_backed(self) -> bool:
        return self.validator_account_ref is not None

    def claimable_at(self, delay_epochs: int) -> int:
        return self.request_epoch + delay_epochs

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticket_id': self.ticket_id,
            'request_epoch': self.request_epoch,
            'amount_from_buffer': str(self.amount_from_buffer),
            'validator_account_ref': self.validator_account_ref,
            'validator_nonce': self.validator_nonce,
            'shares_at_request': str(self.shares_at_request),
            'requested_amount': str(self.requested_amount),
        }


@dataclass
class RewardDistribution:
    """Outcome of one distribute_rewards() call, all amounts in base units."""
    total: int = 0
    insurance: int = 0
    dao: int = 0
    operators: Dict[int, int] = field(default_factory=dict)
    rebuffered: int = 0
    skipped: Dict[int, int] = field(default_factory=dict)

    @property
    def protocol_fee(self) -> int:
        return self.insurance + self.dao

    @property
    def operators_total(self) -> int:
        return sum(self.operators.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': str(self.total),
            'insurance': str(self.insurance),
            'dao': str(self.dao),
            'operators': {str(k): str(v) for k, v in self.operators.items()},
            'rebuffered': str(self.rebuffered),
            'skipped': {str(k): str(v) for k, v in self.skipped.items()},
        }


@dataclass(frozen=True)
class PoolEvent:
    """Pool event, emitted on every state-changing flow."""
    kind: str
    account: str
    amount: int = 0
    ticket_id: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.kind,
            'account': self.account,
            'amount': str(self.amount),
            'ticketId': self.ticket_id,
            'timestamp': self.timestamp,
        }
