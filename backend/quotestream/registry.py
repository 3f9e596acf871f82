"""Reference-counted subscription registry."""

from __future__ import annotations

from threading import Lock

from .instruments import InstrumentKey


class SubscriptionRegistry:
    """Thread-safe map of instrument key -> number of interested consumers.

    Only transitions matter to callers: ``increment`` reports the 0 -> 1 step
    and ``decrement`` reports the 1 -> 0 step. Keys whose count drops to zero
    are pruned, so a later increment is a first reference again.
    """

    def __init__(self) -> None:
        self._counts: dict[InstrumentKey, int] = {}
        self._lock = Lock()

    def increment(self, key: InstrumentKey) -> bool:
        """Add one reference. Returns True if this is the first one."""
        with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
            return count == 1

    def decrement(self, key: InstrumentKey) -> bool:
        """Drop one reference. Returns True if this was the last one.

        Decrementing a key with no references is a no-op that returns False.
        """
        with self._lock:
            count = self._counts.get(key, 0)
            if count == 0:
                return False
            if count == 1:
                del self._counts[key]
                return True
            self._counts[key] = count - 1
            return False

    def count(self, key: InstrumentKey) -> int:
        with self._lock:
            return self._counts.get(key, 0)

    def active_keys(self) -> list[InstrumentKey]:
        """Atomic snapshot of every key with a nonzero count, for replay."""
        with self._lock:
            return list(self._counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def __contains__(self, key: InstrumentKey) -> bool:
        with self._lock:
            return key in self._counts
