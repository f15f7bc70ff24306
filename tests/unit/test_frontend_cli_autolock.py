"""Unit tests for the inactivity auto-lock timer."""

import threading

from passvault.frontend.cli.autolock import AutoLocker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _locker(timeout=10, interval=60):
    clock = FakeClock()
    calls = []
    locker = AutoLocker(timeout, lambda: calls.append(clock.now), interval=interval, clock=clock)
    return locker, clock, calls


def test_fires_once_after_timeout():
    locker, clock, calls = _locker()
    locker.start()
    try:
        clock.now = 9.9
        assert locker.check() is False
        clock.now = 10
        assert locker.check() is True
        assert locker.check() is False
        assert calls == [10]
        assert not locker.running
    finally:
        locker.stop()


def test_reset_pushes_deadline():
    locker, clock, calls = _locker()
    locker.start()
    try:
        clock.now = 8
        locker.reset()
        assert locker.time_until_lock() == 10
        clock.now = 15
        assert locker.check() is False
        clock.now = 18
        assert locker.check() is True
    finally:
        locker.stop()


def test_not_running_never_fires():
    locker, clock, calls = _locker()
    clock.now = 100
    assert locker.check() is False
    assert locker.time_until_lock() == 0.0
    assert calls == []


def test_zero_timeout_does_not_start():
    locker, _, _ = _locker(timeout=0)
    locker.start()
    assert not locker.running


def test_set_timeout_zero_stops():
    locker, clock, calls = _locker()
    locker.start()
    locker.set_timeout(0)
    assert not locker.running
    clock.now = 1000
    assert locker.check() is False


def test_stop_is_idempotent():
    locker, _, _ = _locker()
    locker.start()
    locker.stop()
    locker.stop()
    assert not locker.running
    locker.start()
    assert locker.running
    locker.stop()


def test_background_thread_fires():
    fired = threading.Event()
    locker = AutoLocker(0.05, fired.set, interval=0.01)
    locker.start()
    try:
        assert fired.wait(2)
        assert not locker.running
    finally:
        locker.stop()


def test_stop_from_callback_does_not_deadlock():
    done = threading.Event()
    holder = {}

    def on_timeout():
        holder["locker"].stop()
        done.set()

    locker = AutoLocker(0.01, on_timeout, interval=0.01)
    holder["locker"] = locker
    locker.start()
    assert done.wait(2)
