"""
Withdrawal Ticket Ledger

Non-fungible tickets that represent pending redemptions from the pool. A
ticket is minted when a depositor requests a withdrawal and burned when it is
claimed. Tickets can be transferred or approved like any NFT, so the right to
claim can change hands while the withdrawal delay runs.

Owned and approved tickets are tracked per address with swap-remove indexes,
giving O(1) enumeration updates on every transfer, approval and burn.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import TICKET_NAME, TICKET_SYMBOL
from ..exceptions import InvalidState, PermissionDenied, TicketNotFound
from ..guard import Journaled
from ..indexing import OwnershipIndex
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TicketEvent:
    """Emitted on mint, transfer, approval and burn."""
    kind: str
    token_id: int
    sender: str
    recipient: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "tokenId": self.token_id,
            "from": self.sender,
            "to": self.recipient,
            "timestamp": self.timestamp,
        }


class WithdrawalTicketLedger(Journaled):
    """
    Registry of withdrawal tickets.

    Only the minter (the stake pool) can create and destroy tickets. Ticket
    ids start at 1 and are never reused.
    """

    _journal_fields = (
        "_owners", "_approvals", "_owned", "_approved", "_token_id_index",
        "_minter", "version",
    )
    _journal_logs = ("_events",)

    def __init__(
        self,
        owner: str,
        minter: str = "",
        name: str = TICKET_NAME,
        symbol: str = TICKET_SYMBOL,
    ):
        self.name = name
        self.symbol = symbol
        self.owner = owner
        self.version = "1.0.0"
        self._minter = minter

        self._owners: Dict[int, str] = {}
        self._approvals: Dict[int, str] = {}
        self._owned: OwnershipIndex[str, int] = OwnershipIndex()
        self._approved: OwnershipIndex[str, int] = OwnershipIndex()
        self._token_id_index = 0
        self._events: List[TicketEvent] = []

    # ── Administration ────────────────────────────────────────────────

    def set_minter(self, caller: str, minter: str) -> None:
        if caller != self.owner:
            raise PermissionDenied(f"{caller} is not the ledger owner")
        self._minter = minter
        logger.info(f"Ticket minter set to {minter}")

    def set_version(self, caller: str, version: str) -> None:
        if caller != self.owner:
            raise PermissionDenied(f"{caller} is not the ledger owner")
        self.version = version

    @property
    def minter(self) -> str:
        return self._minter

    def _require_minter(self, caller: str) -> None:
        if not self._minter or caller != self._minter:
            raise PermissionDenied(f"{caller} is not the ticket minter")

    def _require_exists(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise TicketNotFound(f"Ticket #{token_id} does not exist")
        return owner

    # ── Lifecycle ─────────────────────────────────────────────────────

    def mint(self, caller: str, to: str) -> int:
        """Mint the next ticket id to ``to`` and return it."""
        self._require_minter(caller)
        if not to:
            raise InvalidState("Cannot mint a ticket to the empty address")

        self._token_id_index += 1
        token_id = self._token_id_index
        self._owners[token_id] = to
        self._owned.add(to, token_id)

        self._events.append(TicketEvent("Mint", token_id, "", to))
        logger.debug(f"Minted ticket #{token_id} to {to}")
        return token_id

    def burn(self, caller: str, token_id: int) -> None:
        """Destroy a ticket, dropping it from its owner's and approver's lists."""
        self._require_minter(caller)
        owner = self._require_exists(token_id)

        self._clear_approval(token_id)
        self._owned.remove(token_id)
        del self._owners[token_id]

        self._events.append(TicketEvent("Burn", token_id, owner, ""))
        logger.debug(f"Burned ticket #{token_id} of {owner}")

    def transfer(self, caller: str, sender: str, recipient: str, token_id: int) -> None:
        """Move a ticket from ``sender`` to ``recipient``; any approval is cleared."""
        owner = self._require_exists(token_id)
        if not self.is_approved_or_owner(caller, token_id):
            raise PermissionDenied(f"{caller} is not owner nor approved for ticket #{token_id}")
        if owner != sender:
            raise InvalidState(f"Ticket #{token_id} is not owned by {sender}")
        if not recipient:
            raise InvalidState("Cannot transfer a ticket to the empty address")

        self._clear_approval(token_id)
        self._owned.move(token_id, recipient)
        self._owners[token_id] = recipient

        self._events.append(TicketEvent("Transfer", token_id, sender, recipient))
        logger.debug(f"Transferred ticket #{token_id}: {sender} → {recipient}")

    def approve(self, caller: str, spender: str, token_id: int) -> None:
        """
        Approve ``spender`` to act on a ticket. Only the owner may approve.

        Re-approving moves the ticket from the previous spender's list to the
        new one; an empty spender clears the approval.
        """
        owner = self._require_exists(token_id)
        if caller != owner:
            raise PermissionDenied(f"{caller} is not the owner of ticket #{token_id}")
        if spender == owner:
            raise InvalidState("Approval to current owner")

        self._clear_approval(token_id)
        if spender:
            self._approvals[token_id] = spender
            self._approved.add(spender, token_id)

        self._events.append(TicketEvent("Approval", token_id, owner, spender))

    def _clear_approval(self, token_id: int) -> None:
        if self._approvals.pop(token_id, None) is not None:
            self._approved.remove(token_id)

    # ── Read-only views ───────────────────────────────────────────────

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> str:
        return self._require_exists(token_id)

    def get_approved(self, token_id: int) -> Optional[str]:
        self._require_exists(token_id)
        return self._approvals.get(token_id)

    def is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        owner = self._require_exists(token_id)
        return spender == owner or self._approvals.get(token_id) == spender

    def balance_of(self, owner: str) -> int:
        return self._owned.count(owner)

    def owned_tokens(self, owner: str) -> List[int]:
        return self._owned.items(owner)

    def approved_tokens(self, spender: str) -> List[int]:
        return self._approved.items(spender)

    @property
    def token_id_index(self) -> int:
        return self._token_id_index

    @property
    def events(self) -> List[TicketEvent]:
        return list(self._events)

    def verify_indexes(self) -> bool:
        """Check both swap-remove indexes against the owner and approval maps."""
        if not (self._owned.verify() and self._approved.verify()):
            return False
        if len(self._owned) != len(self._owners) or len(self._approved) != len(self._approvals):
            return False
        for token_id, owner in self._owners.items():
            if self._owned.key_of(token_id) != owner:
                return False
        for token_id, spender in self._approvals.items():
            if self._approved.key_of(token_id) != spender:
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "version": self.version,
            "minter": self._minter,
            "tokenIdIndex": self._token_id_index,
            "tickets": {str(tid): owner for tid, owner in sorted(self._owners.items())},
            "approvals": {str(tid): sp for tid, sp in sorted(self._approvals.items())},
        }

    def __repr__(self) -> str:
        return f"WithdrawalTicketLedger({self.symbol}, live={len(self._owners)})"
