"""
Epoch Oracle

The pool never derives time itself. Withdrawal delays are counted in epochs
read from an externally supplied oracle.
"""

from abc import ABC, abstractmethod

from .logger import get_logger

logger = get_logger(__name__)


class EpochOracle(ABC):
    """Source of the network's current epoch."""

    @abstractmethod
    def current_epoch(self) -> int:
        """Return the current epoch number."""


class ManualEpochOracle(EpochOracle):
    """Epoch oracle advanced explicitly by its owner (simulations, tests)."""

    def __init__(self, epoch: int = 0):
        if epoch < 0:
            raise ValueError("Epoch cannot be negative")
        self._epoch = epoch

    def current_epoch(self) -> int:
        return self._epoch

    def set_epoch(self, epoch: int) -> None:
        if epoch < self._epoch:
            raise ValueError(f"Epoch cannot move backwards ({epoch} < {self._epoch})")
        self._epoch = epoch
        logger.debug(f"Epoch set to epoch {epoch}")

    def advance(self, epochs: int = 1) -> int:
        self.set_epoch(self._epoch + epochs)
        return self._epoch
