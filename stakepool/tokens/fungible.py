"""
Fungible Token Ledger

Holds integer balances for one asset. Depositors hold the staked asset in one
instance; the pool keeps a second instance for its share token and is the
only address allowed to mint it.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..constants import DECIMALS
from ..exceptions import PermissionDenied, StakePoolException
from ..guard import Journaled
from ..logger import get_logger

logger = get_logger(__name__)

MINT_BURN_ADDRESS = ""


class TokenError(StakePoolException):
    """Rejected token call."""


class InsufficientBalanceError(TokenError):
    """Debit larger than the holder's balance."""


class InsufficientAllowanceError(TokenError):
    """Delegated transfer larger than the remaining allowance."""


# ── Events ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransferEvent:
    """Balance movement. Mints originate at, and burns end at, ``MINT_BURN_ADDRESS``."""
    token: str
    source: str
    target: str
    amount: int
    at: float = field(default_factory=time.time)

    kind = "Transfer"

    @property
    def is_mint(self) -> bool:
        return self.source == MINT_BURN_ADDRESS

    @property
    def is_burn(self) -> bool:
        return self.target == MINT_BURN_ADDRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "token": self.token,
            "source": self.source,
            "target": self.target,
            "amount": str(self.amount),
            "at": self.at,
        }


@dataclass(frozen=True)
class ApprovalEvent:
    token: str
    holder: str
    spender: str
    amount: int
    at: float = field(default_factory=time.time)

    kind = "Approval"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "token": self.token,
            "holder": self.holder,
            "spender": self.spender,
            "amount": str(self.amount),
            "at": self.at,
        }


# ── Ledger ────────────────────────────────────────────────────────────

class FungibleToken(Journaled):
    """
    Integer balance ledger with allowances.

    ``transfer``, ``approve`` and ``transfer_from`` behave like their ERC-20
    namesakes. Supply only changes through ``mint`` and ``burn``, and both
    require the caller to be in the minter set.
    """

    _journal_fields = ("_supply", "_balances", "_allowances", "_minters")
    _journal_logs = ("_events",)

    def __init__(self, name: str, symbol: str, decimals: int = DECIMALS, *, minters=()):
        if not name or not symbol:
            raise TokenError(f"Token needs a name and a symbol, got {name!r} / {symbol!r}")
        if not 0 <= decimals <= DECIMALS:
            raise TokenError(f"Unsupported decimals {decimals}, expected 0..{DECIMALS}")

        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self._supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}  # keyed (holder, spender)
        self._minters = set(minters)
        self._events: List[Any] = []

        logger.info(f"{symbol} ledger created, minters={sorted(self._minters)}")

    @property
    def total_supply(self) -> int:
        return self._supply

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def allowance(self, holder: str, spender: str) -> int:
        return self._allowances.get((holder, spender), 0)

    def is_minter(self, address: str) -> bool:
        return address in self._minters

    @property
    def events(self) -> List[Any]:
        return self._events[:]

    def _emit(self, event):
        self._events.append(event)
        return event

    def _debit(self, holder: str, amount: int) -> None:
        available = self.balance_of(holder)
        if amount > available:
            raise InsufficientBalanceError(
                f"{holder} holds {available} {self.symbol}, needs {amount}"
            )
        self._balances[holder] = available - amount

    def _credit(self, holder: str, amount: int) -> None:
        self._balances[holder] = self.balance_of(holder) + amount

    # ── Transfers ─────────────────────────────────────────────────────

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferEvent:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Zero is a valid amount and still produces an event.
        """
        if amount < 0:
            raise TokenError(f"Negative transfer of {amount} {self.symbol}")
        if recipient == MINT_BURN_ADDRESS:
            raise TokenError("Transfers to the mint/burn address are not allowed")
        self._debit(sender, amount)
        self._credit(recipient, amount)
        logger.debug(f"{self.symbol} {sender} → {recipient}: {amount} units")
        return self._emit(TransferEvent(self.symbol, sender, recipient, amount))

    def approve(self, holder: str, spender: str, amount: int) -> ApprovalEvent:
        if amount < 0:
            raise TokenError(f"Negative allowance of {amount} {self.symbol}")
        self._allowances[(holder, spender)] = amount
        logger.debug(f"{self.symbol} allowance {holder} → {spender} set to {amount} units")
        return self._emit(ApprovalEvent(self.symbol, holder, spender, amount))

    def transfer_from(self, spender: str, holder: str, recipient: str, amount: int) -> TransferEvent:
        """Spend ``holder``'s balance using the allowance granted to ``spender``."""
        remaining = self.allowance(holder, spender)
        if amount > remaining:
            raise InsufficientAllowanceError(
                f"{spender} may spend {remaining} {self.symbol} of {holder}, asked for {amount}"
            )
        event = self.transfer(holder, recipient, amount)
        self._allowances[(holder, spender)] = remaining - amount
        return event

    # ── Supply ────────────────────────────────────────────────────────

    def _require_minter(self, caller: str) -> None:
        if not self.is_minter(caller):
            raise PermissionDenied(f"{caller} cannot mint or burn {self.symbol}")

    def add_minter(self, caller: str, minter: str) -> None:
        """Grant mint rights. The caller must already hold them."""
        self._require_minter(caller)
        self._minters.add(minter)
        logger.info(f"{self.symbol}: {caller} granted mint rights to {minter}")

    def remove_minter(self, caller: str, minter: str) -> None:
        self._require_minter(caller)
        self._minters.discard(minter)
        logger.info(f"{self.symbol}: {caller} revoked mint rights of {minter}")

    def mint(self, caller: str, recipient: str, amount: int) -> TransferEvent:
        self._require_minter(caller)
        if amount <= 0:
            raise TokenError(f"Mint amount must be positive, got {amount}")
        if recipient == MINT_BURN_ADDRESS:
            raise TokenError("Cannot mint to the mint/burn address")
        self._credit(recipient, amount)
        self._supply += amount
        logger.debug(f"{self.symbol} minted {amount} units to {recipient}")
        return self._emit(TransferEvent(self.symbol, MINT_BURN_ADDRESS, recipient, amount))

    def burn(self, caller: str, holder: str, amount: int) -> TransferEvent:
        self._require_minter(caller)
        if amount <= 0:
            raise TokenError(f"Burn amount must be positive, got {amount}")
        self._debit(holder, amount)
        self._supply -= amount
        logger.debug(f"{self.symbol} burned {amount} units from {holder}")
        return self._emit(TransferEvent(self.symbol, holder, MINT_BURN_ADDRESS, amount))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "supply": str(self._supply),
            "holders": len([b for b in self._balances.values() if b]),
            "minters": sorted(self._minters),
        }

    def __repr__(self) -> str:
        return f"<FungibleToken {self.symbol} supply={self._supply}>"
