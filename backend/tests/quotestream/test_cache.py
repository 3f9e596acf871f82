"""Tests for TickStore."""

from quotestream.cache import TickStore
from quotestream.instruments import InstrumentKey
from quotestream.models import Tick

KEY = InstrumentKey("NSE", "RELIANCE")
OTHER = InstrumentKey("NSE", "TCS")


def _tick(ltp: float, volume: int = 500, key: InstrumentKey = KEY, received_at: float = 1.0) -> Tick:
    return Tick(key=key, ltp=ltp, volume=volume, received_at=received_at)


class TestTickStore:
    """Unit tests for the TickStore."""

    def test_apply_and_latest(self):
        store = TickStore()
        tick = _tick(100.0)
        assert store.apply(KEY, tick) is True
        assert store.latest(KEY) == tick

    def test_latest_unknown(self):
        assert TickStore().latest(KEY) is None

    def test_identical_tick_does_not_notify(self):
        """Test ltp=100/volume=500 repeated is suppressed; volume=600 is not."""
        store = TickStore()
        seen: list[Tick] = []
        store.watch(KEY, seen.append)

        assert store.apply(KEY, _tick(100.0, 500)) is True
        assert store.apply(KEY, _tick(100.0, 500)) is False
        assert len(seen) == 1

        assert store.apply(KEY, _tick(100.0, 600)) is True
        assert len(seen) == 2
        assert seen[-1].volume == 600

    def test_non_material_tick_still_replaces_metadata(self):
        store = TickStore()
        store.apply(KEY, _tick(100.0, 500, received_at=1.0))
        store.apply(KEY, _tick(100.0, 500, received_at=2.0))
        assert store.latest(KEY).received_at == 2.0

    def test_version_only_bumps_on_material_change(self):
        store = TickStore()
        v0 = store.version
        store.apply(KEY, _tick(100.0))
        store.apply(KEY, _tick(100.0))
        assert store.version == v0 + 1
        store.apply(KEY, _tick(101.0))
        assert store.version == v0 + 2

    def test_watchers_are_per_key(self):
        store = TickStore()
        seen: list[Tick] = []
        store.watch(OTHER, seen.append)
        store.apply(KEY, _tick(100.0))
        assert seen == []

    def test_unwatch(self):
        store = TickStore()
        seen: list[Tick] = []
        unwatch = store.watch(KEY, seen.append)
        unwatch()
        unwatch()  # Second call is harmless
        store.apply(KEY, _tick(100.0))
        assert seen == []

    def test_failing_watcher_does_not_block_others(self):
        store = TickStore()
        seen: list[Tick] = []

        def broken(tick):
            raise RuntimeError("boom")

        store.watch(KEY, broken)
        store.watch(KEY, seen.append)
        assert store.apply(KEY, _tick(100.0)) is True
        assert len(seen) == 1

    def test_seed_only_when_empty(self):
        store = TickStore()
        assert store.seed(KEY, _tick(90.0)) is True
        assert store.seed(KEY, _tick(80.0)) is False
        assert store.latest(KEY).ltp == 90.0

    def test_seed_does_not_overwrite_streaming(self):
        store = TickStore()
        store.apply(KEY, _tick(100.0))
        assert store.seed(KEY, _tick(50.0)) is False
        assert store.latest(KEY).ltp == 100.0

    def test_seed_replaces_invalidated_tick(self):
        store = TickStore()
        store.apply(KEY, _tick(100.0))
        store.invalidate(KEY)

        assert not store.is_current(KEY)
        assert store.latest(KEY).ltp == 100.0
        assert store.seed(KEY, _tick(120.0)) is True
        assert store.latest(KEY).ltp == 120.0
        assert store.is_current(KEY)

    def test_stream_after_invalidate_wins_over_seed(self):
        store = TickStore()
        store.apply(KEY, _tick(100.0))
        store.invalidate(KEY)
        store.apply(KEY, _tick(105.0))

        assert store.is_current(KEY)
        assert store.seed(KEY, _tick(120.0)) is False
        assert store.latest(KEY).ltp == 105.0

    def test_invalidate_unknown_key(self):
        store = TickStore()
        store.invalidate(KEY)
        assert not store.is_current(KEY)
        assert store.seed(KEY, _tick(90.0)) is True

    def test_seed_notifies_watchers(self):
        store = TickStore()
        seen: list[Tick] = []
        store.watch(KEY, seen.append)
        store.seed(KEY, _tick(90.0))
        assert len(seen) == 1

    def test_get_all(self):
        store = TickStore()
        store.apply(KEY, _tick(100.0))
        store.apply(OTHER, _tick(3900.0, key=OTHER))
        assert set(store.get_all()) == {KEY, OTHER}

    def test_len_and_contains(self):
        store = TickStore()
        assert len(store) == 0
        store.apply(KEY, _tick(100.0))
        assert len(store) == 1
        assert KEY in store
        assert OTHER not in store
