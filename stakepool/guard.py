"""
Operation Guard

Serialises entry into the pool and the registry and makes every mutating
operation all-or-nothing.

Each guarded component exposes ``journal_participants()``: the objects whose
state an operation may touch (itself, its tokens, the ticket ledger, the
in-memory validator accounts). Before the operation runs each participant is
snapshotted; if the operation raises, every snapshot is restored and the
exception propagates unchanged.
"""

import copy
import functools
from typing import Any, Dict, Tuple

from .exceptions import Unavailable
from .logger import get_logger

logger = get_logger(__name__)


class Journaled:
    """
    Mixin for objects that can snapshot and restore their own state.

    Subclasses list the attributes that make up their mutable state in
    ``_journal_fields``. References to collaborators must not be listed, they
    would be deep-copied along with the state.

    Append-only lists such as event logs go in ``_journal_logs`` instead. Only
    their length is recorded, and a restore truncates them back to it.
    """

    _journal_fields: Tuple[str, ...] = ()
    _journal_logs: Tuple[str, ...] = ()

    def snapshot(self) -> Dict[str, Any]:
        state = {name: copy.deepcopy(getattr(self, name)) for name in self._journal_fields}
        for name in self._journal_logs:
            state[name] = len(getattr(self, name))
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            if name in self._journal_logs:
                del getattr(self, name)[value:]
            else:
                setattr(self, name, value)


def atomic(method):
    """
    Decorator for mutating entry points.

    Raises ``Unavailable`` if the owning component is already inside a guarded
    call, otherwise runs ``method`` and rolls back all journal participants if
    it raises.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if getattr(self, "_entered", False):
            raise Unavailable(
                f"{type(self).__name__}.{method.__name__}: re-entrant call rejected"
            )

        saved = []
        seen = set()
        for participant in self.journal_participants():
            if id(participant) in seen:
                continue
            seen.add(id(participant))
            saved.append((participant, participant.snapshot()))

        self._entered = True
        try:
            return method(self, *args, **kwargs)
        except Exception:
            logger.debug(f"{type(self).__name__}.{method.__name__} failed, rolling back")
            for participant, state in reversed(saved):
                participant.restore(state)
            raise
        finally:
            self._entered = False

    return wrapper


def require_idle(component) -> None:
    """Reject reads of a component that is in the middle of an operation."""
    if getattr(component, "_entered", False):
        raise Unavailable(f"{type(component).__name__} is mid-operation")
