"""
Subscription set for a feed connection.
"""

import threading
from typing import Iterable, Optional, Union

from ..exceptions import ValidationError


class SubscriptionRegistry:
    """
    Ordered, de-duplicated set of subscribed identifiers.

    Holds asset (token) IDs on the market channel and condition IDs on the
    user channel. Thread-safe; the lock may be shared with the owning client
    so a snapshot and the frame built from it are taken atomically.
    """

    def __init__(
        self,
        initial: Iterable[str] = (),
        lock: Optional[threading.RLock] = None
    ):
        self._lock = lock or threading.RLock()
        # dict keeps insertion order
        self._ids: dict[str, None] = {}
        self.add(initial)

    @staticmethod
    def _normalize(ids: Union[str, Iterable[str]]) -> list[str]:
        if isinstance(ids, str):
            ids = [ids]
        result = []
        for item in ids:
            if not isinstance(item, str) or not item:
                raise ValidationError(f"Invalid subscription id: {item!r}")
            result.append(item)
        return result

    def add(self, ids: Union[str, Iterable[str]]) -> list[str]:
        """Add identifiers, returning those not already present."""
        ids = self._normalize(ids)
        added = []
        with self._lock:
            for item in ids:
                if item not in self._ids:
                    self._ids[item] = None
                    added.append(item)
        return added

    def remove(self, ids: Union[str, Iterable[str]]) -> list[str]:
        """Remove identifiers, returning those that were present."""
        ids = self._normalize(ids)
        removed = []
        with self._lock:
            for item in ids:
                if item in self._ids:
                    del self._ids[item]
                    removed.append(item)
        return removed

    def snapshot(self) -> list[str]:
        """Current identifiers in insertion order."""
        with self._lock:
            return list(self._ids)

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __repr__(self) -> str:
        return f"SubscriptionRegistry({len(self)} ids)"
