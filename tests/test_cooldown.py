"""Tests for the per-rule cooldown gate."""

import threading
from datetime import datetime, timedelta, timezone

from src.automation.application.cooldown import CooldownTracker

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: float):
    return T0 + timedelta(minutes=minutes)


class TestTryAcquire:
    """Test CooldownTracker.try_acquire"""

    def test_first_acquire_succeeds(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))

        assert tracker.try_acquire(1, at(0)) is True
        assert tracker.last_fired_at(1) == at(0)

    def test_cooldown_window(self):
        """Fire at 0, suppressed at 1m and 4m, fires again at 6m"""
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))

        fired = [minute for minute in (0, 1, 4, 6) if tracker.try_acquire(1, at(minute))]

        assert fired == [0, 6]
        assert tracker.last_fired_at(1) == at(6)

    def test_boundary_is_inclusive(self):
        """Exactly one cooldown after the last firing the rule may fire again"""
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        tracker.try_acquire(1, at(0))

        assert tracker.try_acquire(1, at(5)) is True

    def test_zero_cooldown_fires_every_time(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta())

        assert all(tracker.try_acquire(1, at(0)) for _ in range(3))

    def test_older_reading_never_moves_clock_back(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        tracker.try_acquire(1, at(10))

        assert tracker.try_acquire(1, at(2)) is False
        assert tracker.last_fired_at(1) == at(10)

    def test_unregistered_rule_never_fires(self):
        assert CooldownTracker().try_acquire(99, at(0)) is False

    def test_rules_are_independent(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        tracker.register(2, timedelta(minutes=5))

        assert tracker.try_acquire(1, at(0)) is True
        assert tracker.try_acquire(2, at(0)) is True
        assert tracker.try_acquire(1, at(1)) is False

    def test_concurrent_acquire_admits_one(self):
        """Many threads racing on the same instant produce a single firing"""
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(tracker.try_acquire(1, at(0)))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1


class TestRegistration:
    """Test register/forget/reset"""

    def test_reregister_keeps_clock(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        tracker.try_acquire(1, at(0))

        tracker.register(1, timedelta(minutes=10))

        assert tracker.last_fired_at(1) == at(0)
        assert tracker.try_acquire(1, at(6)) is False
        assert tracker.try_acquire(1, at(10)) is True

    def test_register_with_last_fired_at(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5), last_fired_at=at(0))

        assert tracker.try_acquire(1, at(3)) is False

    def test_forget(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))

        tracker.forget(1)

        assert 1 not in tracker
        assert len(tracker) == 0

    def test_reset(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        tracker.try_acquire(1, at(0))

        tracker.reset(1)

        assert tracker.last_fired_at(1) is None
        assert tracker.try_acquire(1, at(1)) is True

    def test_remaining(self):
        tracker = CooldownTracker()
        tracker.register(1, timedelta(minutes=5))
        assert tracker.remaining(1, at(0)) == timedelta()

        tracker.try_acquire(1, at(0))

        assert tracker.remaining(1, at(2)) == timedelta(minutes=3)
        assert tracker.remaining(1, at(7)) == timedelta()
