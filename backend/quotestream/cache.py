"""Thread-safe in-memory tick store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

from .instruments import InstrumentKey
from .models import Tick

logger = logging.getLogger(__name__)

TickCallback = Callable[[Tick], None]


class TickStore:
    """Latest tick per instrument, with change detection.

    Writers: the connection receive loop and snapshot seeding.
    Readers: subscription handles, the HTTP read surface, SSE.

    A tick whose price and volume equal the stored one still replaces it (so
    its receive time is kept) but does not notify watchers or bump the
    version. A noisy feed repeating identical values causes no churn.
    """

    def __init__(self) -> None:
        self._ticks: dict[InstrumentKey, Tick] = {}
        self._watchers: dict[InstrumentKey, list[TickCallback]] = {}
        self._lock = Lock()
        self._version: int = 0  # Bumped on material changes only
        self._stale: set[InstrumentKey] = set()

    def apply(self, key: InstrumentKey, tick: Tick) -> bool:
        """Store ``tick`` as the latest for ``key``. Returns True on a material change."""
        with self._lock:
            changed = tick.is_material_change_from(self._ticks.get(key))
            self._ticks[key] = tick
            self._stale.discard(key)
            if not changed:
                return False
            self._version += 1
            watchers = list(self._watchers.get(key, ()))

        self._notify(key, tick, watchers)
        return True

    def seed(self, key: InstrumentKey, tick: Tick) -> bool:
        """Apply ``tick`` only if ``key`` has no current tick.

        Used for REST snapshots. A snapshot replaces a tick marked stale by
        ``invalidate`` but never one the stream delivered after that.
        """
        with self._lock:
            if key in self._ticks and key not in self._stale:
                return False
            self._stale.discard(key)
            self._ticks[key] = tick
            self._version += 1
            watchers = list(self._watchers.get(key, ()))

        self._notify(key, tick, watchers)
        return True

    def invalidate(self, key: InstrumentKey) -> None:
        """Mark the stored tick for ``key`` as out of date.

        The tick stays readable until the next ``apply`` or ``seed`` replaces it.
        """
        with self._lock:
            if key in self._ticks:
                self._stale.add(key)

    def is_current(self, key: InstrumentKey) -> bool:
        """True if ``key`` has a tick that has not been invalidated."""
        with self._lock:
            return key in self._ticks and key not in self._stale

    def latest(self, key: InstrumentKey) -> Tick | None:
        """Latest tick for a key, or None if nothing has arrived."""
        with self._lock:
            return self._ticks.get(key)

    def get_all(self) -> dict[InstrumentKey, Tick]:
        """Snapshot of all current ticks. Returns a shallow copy."""
        with self._lock:
            return dict(self._ticks)

    def watch(self, key: InstrumentKey, callback: TickCallback) -> Callable[[], None]:
        """Call ``callback(tick)`` on every material change for ``key``.

        Returns a function that removes the watcher; calling it twice is harmless.
        """
        with self._lock:
            self._watchers.setdefault(key, []).append(callback)

        def unwatch() -> None:
            with self._lock:
                callbacks = self._watchers.get(key)
                if not callbacks or callback not in callbacks:
                    return
                callbacks.remove(callback)
                if not callbacks:
                    del self._watchers[key]

        return unwatch

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def _notify(self, key: InstrumentKey, tick: Tick, watchers: list[TickCallback]) -> None:
        for callback in watchers:
            try:
                callback(tick)
            except Exception:
                logger.exception("Tick watcher for %s failed", key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ticks)

    def __contains__(self, key: InstrumentKey) -> bool:
        with self._lock:
            return key in self._ticks
