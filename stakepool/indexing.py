"""
Ownership Index

Keyed, unordered collections of ids with O(1) insert, removal and position
lookup. Each key (an owner or an approved spender) maps to a list of ids and a
reverse map records every id's position inside its list. Removal moves the
last element of the list into the freed slot and pops the tail.

An id belongs to at most one key at a time, so a single reverse map serves
every list.
"""

from typing import Dict, Generic, Hashable, Iterator, List, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T", bound=Hashable)


class OwnershipIndex(Generic[K, T]):
    """
    Swap-remove index of ids grouped by key.

    Invariant: for every indexed id ``i`` held under key ``k``,
    ``self._lists[k][self._positions[i]] == i``.
    """

    def __init__(self) -> None:
        self._lists: Dict[K, List[T]] = {}
        self._positions: Dict[T, int] = {}
        self._keys: Dict[T, K] = {}

    def add(self, key: K, item: T) -> None:
        """Append ``item`` to ``key``'s list."""
        if item in self._positions:
            raise ValueError(f"{item!r} is already indexed under {self._keys[item]!r}")
        items = self._lists.setdefault(key, [])
        self._positions[item] = len(items)
        self._keys[item] = key
        items.append(item)

    def remove(self, item: T) -> K:
        """
        Remove ``item`` from whichever list holds it.

        The last element of that list takes the freed slot, so list order is
        not preserved.

        Returns:
            The key the item was held under.

        Raises:
            KeyError: If the item is not indexed.
        """
        position = self._positions.pop(item)
        key = self._keys.pop(item)
        items = self._lists[key]
        last = items.pop()
        if last != item:
            items[position] = last
            self._positions[last] = position
        if not items:
            del self._lists[key]
        return key

    def move(self, item: T, new_key: K) -> None:
        """Re-index ``item`` under ``new_key``."""
        self.remove(item)
        self.add(new_key, item)

    # ── Read-only views ───────────────────────────────────────────────

    def items(self, key: K) -> List[T]:
        return list(self._lists.get(key, ()))

    def count(self, key: K) -> int:
        return len(self._lists.get(key, ()))

    def key_of(self, item: T) -> K:
        return self._keys[item]

    def position_of(self, item: T) -> int:
        return self._positions[item]

    def keys(self) -> Iterator[K]:
        return iter(list(self._lists))

    def __contains__(self, item: object) -> bool:
        return item in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def verify(self) -> bool:
        """Check that every recorded position matches the id's true index."""
        seen = 0
        for key, items in self._lists.items():
            if not items:
                return False
            for index, item in enumerate(items):
                if self._positions.get(item) != index or self._keys.get(item) != key:
                    return False
                seen += 1
        return seen == len(self._positions) == len(self._keys)
