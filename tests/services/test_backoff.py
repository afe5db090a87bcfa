"""Tests for acmelib.services.backoff."""

from __future__ import annotations

import threading
import time

import pytest

from acmelib.core.errors import Cancelled
from acmelib.services.backoff import Backoff, Cancellation


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestBackoff:
    def test_doubling_with_cap(self):
        clock = FakeClock()
        backoff = Backoff(base=1, maximum=30, timeout=1000, clock=clock)
        delays = [backoff.next_delay() for _ in range(7)]
        assert delays == [1, 2, 4, 8, 16, 30, 30]
        assert backoff.attempts == 7

    def test_ceiling(self):
        clock = FakeClock()
        backoff = Backoff(base=1, maximum=30, timeout=300, clock=clock)
        clock.now = 300
        assert backoff.expired
        assert backoff.next_delay() is None

    def test_last_delay_trimmed_to_budget(self):
        clock = FakeClock()
        backoff = Backoff(base=10, maximum=30, timeout=25, clock=clock)
        clock.now = 20
        assert backoff.next_delay() == 5

    def test_reset(self):
        clock = FakeClock()
        backoff = Backoff(base=1, maximum=30, timeout=10, clock=clock)
        backoff.next_delay()
        clock.now = 50
        backoff.reset()
        assert backoff.attempts == 0
        assert backoff.elapsed == 0
        assert backoff.next_delay() == 1


class TestCancellation:
    def test_not_cancelled(self):
        cancel = Cancellation()
        assert not cancel.cancelled
        cancel.raise_if_cancelled()

    def test_cancel(self):
        cancel = Cancellation()
        cancel.cancel()
        assert cancel.cancelled
        with pytest.raises(Cancelled, match="cancelled"):
            cancel.raise_if_cancelled()

    def test_deadline(self):
        clock = FakeClock()
        cancel = Cancellation(timeout=5, clock=clock)
        assert not cancel.cancelled
        clock.now = 5
        with pytest.raises(Cancelled, match="deadline"):
            cancel.raise_if_cancelled()

    def test_wait_returns_after_delay(self):
        cancel = Cancellation()
        started = time.monotonic()
        cancel.wait(0.01)
        assert time.monotonic() - started >= 0.005

    def test_wait_wakes_on_cancel(self):
        cancel = Cancellation()
        timer = threading.Timer(0.05, cancel.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(Cancelled):
                cancel.wait(30)
        finally:
            timer.cancel()
        assert time.monotonic() - started < 5

    def test_wait_trimmed_to_deadline(self):
        cancel = Cancellation(timeout=0.05)
        started = time.monotonic()
        with pytest.raises(Cancelled, match="deadline"):
            cancel.wait(30)
        assert time.monotonic() - started < 5
