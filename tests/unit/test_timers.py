"""Tests for expiring sets and deadline timers."""

import threading
from unittest.mock import MagicMock

from fotos_sync.utils.timers import DeadlineTimers, ExpiringSet


def test_expiring_set_drops_members_after_retention(clock):
    seen = ExpiringSet(60, clock=clock)

    assert seen.add("/ftp/a.jpg")
    assert not seen.add("/ftp/a.jpg")
    assert "/ftp/a.jpg" in seen

    clock.advance(59)
    assert "/ftp/a.jpg" in seen

    clock.advance(2)
    assert "/ftp/a.jpg" not in seen
    assert len(seen) == 0
    assert seen.add("/ftp/a.jpg")


def test_expiring_set_discard_and_clear(clock):
    seen = ExpiringSet(60, clock=clock)
    seen.add("a")
    seen.add("b")

    seen.discard("a")
    seen.discard("missing")
    assert "a" not in seen
    assert len(seen) == 1

    seen.clear()
    assert len(seen) == 0


def test_deadline_timer_fires_with_key():
    fired = threading.Event()
    keys = []

    def _callback(key):
        keys.append(key)
        fired.set()

    timers = DeadlineTimers()
    timers.schedule("a.jpg", 0.01, _callback)

    assert fired.wait(5)
    assert keys == ["a.jpg"]
    assert "a.jpg" not in timers


def test_deadline_timer_cancel():
    timers = DeadlineTimers()
    callback = MagicMock()
    timers.schedule("a.jpg", 30, callback)

    assert "a.jpg" in timers
    assert timers.cancel("a.jpg")
    assert not timers.cancel("a.jpg")
    assert timers.pending() == []
    callback.assert_not_called()


def test_reschedule_replaces_previous_timer():
    created = []

    def _factory(timeout, fn):
        timer = MagicMock()
        timer.timeout = timeout
        timer.fire = fn
        created.append(timer)
        return timer

    timers = DeadlineTimers(timer_factory=_factory)
    callback = MagicMock()
    timers.schedule("a.jpg", 1.0, callback)
    timers.schedule("a.jpg", 1.0, callback)

    created[0].cancel.assert_called_once()
    assert all(timer.start.called for timer in created)

    # A superseded timer that still manages to run is ignored.
    created[0].fire()
    callback.assert_not_called()

    created[1].fire()
    callback.assert_called_once_with("a.jpg")


def test_callback_errors_are_contained():
    created = []

    def _factory(timeout, fn):
        timer = MagicMock()
        timer.fire = fn
        created.append(timer)
        return timer

    timers = DeadlineTimers(timer_factory=_factory)
    timers.schedule("a.jpg", 1.0, MagicMock(side_effect=RuntimeError("boom")))
    created[0].fire()
    assert timers.pending() == []


def test_cancel_all():
    timers = DeadlineTimers()
    callback = MagicMock()
    for name in ("a", "b", "c"):
        timers.schedule(name, 30, callback)

    timers.cancel_all()

    assert timers.pending() == []
    callback.assert_not_called()
