"""
Tests for keyed locks and deadline timers.
"""

import threading
import time

import pytest

from assessflow.common.threading import DeadlineTimers, KeyedLocks
from assessflow.tests.factories import ManualTimerFactory


class TestKeyedLocks:
    """Tests for KeyedLocks"""

    def test_entry_dropped_after_release(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_entry_dropped_when_body_raises(self):
        locks = KeyedLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0
        with locks.hold("a"):
            pass

    def test_waiter_keeps_entry_alive(self):
        locks = KeyedLocks()
        waiting = threading.Event()
        acquired = threading.Event()

        def waiter():
            waiting.set()
            with locks.hold("a"):
                acquired.set()

        with locks.hold("a"):
            worker = threading.Thread(target=waiter)
            worker.start()
            assert waiting.wait(timeout=2)
            time.sleep(0.05)
            assert not acquired.is_set()
            assert len(locks) == 1

        worker.join(timeout=2)
        assert acquired.is_set()
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        entered = threading.Event()

        with locks.hold("a"):
            def other():
                with locks.hold("b"):
                    entered.set()

            worker = threading.Thread(target=other)
            worker.start()
            assert entered.wait(timeout=2)
            worker.join()

    def test_same_key_serializes(self):
        locks = KeyedLocks()
        counter = {"value": 0}

        def bump():
            for _ in range(200):
                with locks.hold("k"):
                    current = counter["value"]
                    time.sleep(0)
                    counter["value"] = current + 1

        workers = [threading.Thread(target=bump) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert counter["value"] == 800


class TestDeadlineTimers:
    """Tests for DeadlineTimers"""

    def test_arm_and_disarm(self):
        factory = ManualTimerFactory()
        timers = DeadlineTimers(factory)

        timers.arm("x", 30, lambda: None)
        assert timers.is_armed("x")
        assert factory.last.started

        assert timers.disarm("x") is True
        assert factory.last.cancelled
        assert timers.disarm("x") is False

    def test_rearm_cancels_previous(self):
        factory = ManualTimerFactory()
        timers = DeadlineTimers(factory)

        timers.arm("x", 30, lambda: None)
        timers.arm("x", 10, lambda: None)

        first, second = factory.timers
        assert first.cancelled
        assert not second.cancelled
        assert second.interval == 10

    def test_negative_delay_fires_immediately(self):
        factory = ManualTimerFactory()
        DeadlineTimers(factory).arm("x", -5, lambda: None)
        assert factory.last.interval == 0.0

    def test_disarm_all(self):
        factory = ManualTimerFactory()
        timers = DeadlineTimers(factory)
        for key in ("a", "b", "c"):
            timers.arm(key, 5, lambda: None)
        assert timers.disarm_all() == 3
        assert all(t.cancelled for t in factory.timers)

    def test_real_timer_fires(self):
        fired = threading.Event()
        timers = DeadlineTimers()
        timers.arm("x", 0.05, fired.set)
        assert fired.wait(timeout=2)

    def test_real_timer_cancelled(self):
        fired = threading.Event()
        timers = DeadlineTimers()
        timers.arm("x", 0.2, fired.set)
        timers.disarm("x")
        assert not fired.wait(timeout=0.4)

    def test_fired_timer_is_forgotten(self):
        factory = ManualTimerFactory()
        timers = DeadlineTimers(factory)
        fired = []

        timers.arm("x", 30, lambda: fired.append("x"))
        factory.last.fire()

        assert fired == ["x"]
        assert not timers.is_armed("x")
        assert timers.disarm("x") is False

    def test_replaced_timer_firing_keeps_new_entry(self):
        factory = ManualTimerFactory()
        timers = DeadlineTimers(factory)

        timers.arm("x", 30, lambda: None)
        timers.arm("x", 5, lambda: None)
        first, second = factory.timers
        first.callback()

        assert timers.is_armed("x")
        second.fire()
        assert not timers.is_armed("x")
