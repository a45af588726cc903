"""Deadline-based bookkeeping for the ingestion pipeline."""

import logging
import threading
import time
from typing import Callable, Dict, Hashable, List, Optional

logger = logging.getLogger(__name__)


class ExpiringSet:
    """Set whose members drop out after a fixed retention period.

    Expired members are swept lazily on every access, so the set needs no
    background thread and the clock can be replaced in tests.
    """

    def __init__(self, retention: float, clock: Callable[[], float] = time.monotonic):
        self.retention = retention
        self._clock = clock
        self._expires: Dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def _sweep(self) -> None:
        now = self._clock()
        for key in [k for k, deadline in self._expires.items() if deadline <= now]:
            del self._expires[key]

    def add(self, key: Hashable) -> bool:
        """Add a key.

        Returns:
            True if the key was added, False if it was already live
        """
        with self._lock:
            self._sweep()
            if key in self._expires:
                return False
            self._expires[key] = self._clock() + self.retention
            return True

    def discard(self, key: Hashable) -> None:
        with self._lock:
            self._expires.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._expires.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            self._sweep()
            return key in self._expires

    def __len__(self) -> int:
        with self._lock:
            self._sweep()
            return len(self._expires)


class DeadlineTimers:
    """Cancellable per-key callbacks that fire after a timeout."""

    def __init__(self, timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self._timer_factory = timer_factory
        self._timers: Dict[Hashable, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, key: Hashable, timeout: float, callback: Callable[[Hashable], None]) -> None:
        """Schedule ``callback(key)`` after ``timeout`` seconds, replacing any earlier one."""

        def _fire() -> None:
            with self._lock:
                if self._timers.get(key) is not timer:
                    return
                del self._timers[key]
            try:
                callback(key)
            except Exception:
                logger.exception("Deadline callback failed for %s", key)

        timer = self._timer_factory(timeout, _fire)
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(key, None)
            self._timers[key] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cancel(self, key: Hashable) -> bool:
        """Cancel the timer for a key.

        Returns:
            True if a live timer was cancelled
        """
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            timers: List[threading.Timer] = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> List[Hashable]:
        with self._lock:
            return list(self._timers)

    def __contains__(self, key: Optional[Hashable]) -> bool:
        with self._lock:
            return key in self._timers
