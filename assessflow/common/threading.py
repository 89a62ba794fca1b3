"""
Threading Utilities for Assessflow

This module provides the small set of concurrency primitives the assessment
pipeline relies on:

1. Keyed locks, so that work on one attempt or staging record never blocks
   work on another
2. A deadline timer registry that arms one timer per active attempt
"""

import threading
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

# Configure logging
logger = logging.getLogger(__name__)

# Signature of a timer factory: (interval_seconds, callback) -> timer object
# exposing start() and cancel(), as threading.Timer does.
TimerFactory = Callable[[float, Callable[[], None]], Any]


def default_timer_factory(interval: float, callback: Callable[[], None]) -> threading.Timer:
    """Create a daemon threading.Timer that runs callback after interval seconds."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class KeyedLocks:
    """
    Registry of mutual-exclusion locks indexed by key.

    Each key gets its own lock, created on first use. An entry counts the
    threads holding or waiting for it and is dropped when that count reaches
    zero, so the registry only holds keys with work in flight.
    """

    def __init__(self, name: str = "keyed"):
        self.name = name
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks: Dict[Hashable, List[Any]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Context manager acquiring the lock for a key."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class DeadlineTimers:
    """
    One background timer per key.

    Arming a key that already has a timer replaces (and cancels) the old one.
    A timer leaves the registry when it is disarmed or when it fires.
    """

    def __init__(self, timer_factory: Optional[TimerFactory] = None):
        self._timer_factory = timer_factory or default_timer_factory
        self._guard = threading.Lock()
        self._timers: Dict[Hashable, Any] = {}

    def arm(self, key: Hashable, delay_seconds: float, callback: Callable[[], None]) -> None:
        """
        Arm the timer for a key.

        Args:
            key: Timer key (the attempt id)
            delay_seconds: Seconds until the callback fires; negative values fire immediately
            callback: Zero-argument callable run on the timer thread
        """
        def fire() -> None:
            with self._guard:
                if self._timers.get(key) is timer:
                    del self._timers[key]
            callback()

        timer = self._timer_factory(max(0.0, delay_seconds), fire)
        with self._guard:
            previous = self._timers.pop(key, None)
            self._timers[key] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        logger.debug(f"Armed timer {key} for {delay_seconds:.1f}s")

    def disarm(self, key: Hashable) -> bool:
        """
        Cancel and forget the timer for a key.

        Returns:
            True if a timer was armed for the key
        """
        with self._guard:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        logger.debug(f"Disarmed timer {key}")
        return True

    def is_armed(self, key: Hashable) -> bool:
        """Check whether a timer is currently armed for a key."""
        with self._guard:
            return key in self._timers

    def disarm_all(self) -> int:
        """Cancel every armed timer, returning how many were cancelled."""
        with self._guard:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        return len(timers)
