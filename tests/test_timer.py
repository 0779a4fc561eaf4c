"""Tests for the periodic refresh timer."""
from __future__ import annotations

import threading
import time

from hwmon_metrics.timer import RefreshTimer


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.005)
    return predicate()


def test_first_tick_is_immediate():
    fired = threading.Event()
    timer = RefreshTimer(60.0, fired.set)

    timer.start()
    try:
        assert fired.wait(1.0)
    finally:
        timer.cancel()


def test_ticks_repeat_at_interval():
    calls = []
    timer = RefreshTimer(0.01, lambda: calls.append(time.monotonic()))

    timer.start()
    try:
        assert _wait_for(lambda: len(calls) >= 3)
    finally:
        timer.cancel()


def test_failing_tick_does_not_stop_timer(caplog):
    calls = []

    def action():
        calls.append(1)
        if len(calls) == 1:
            raise PermissionError("hardware access denied")

    timer = RefreshTimer(0.01, action)
    timer.start()
    try:
        assert _wait_for(lambda: len(calls) >= 3)
    finally:
        timer.cancel()

    assert timer.failures == 1
    assert "Refresh tick 1 failed." in caplog.text


def test_cancel_stops_thread():
    timer = RefreshTimer(0.01, lambda: None)
    timer.start()
    assert timer.running

    timer.cancel()

    assert not timer.running
    ticks = timer.ticks
    time.sleep(0.05)
    assert timer.ticks == ticks


def test_cancel_before_start_and_twice():
    timer = RefreshTimer(1.0, lambda: None)

    timer.cancel()
    timer.cancel()

    assert not timer.running


def test_interval_is_clamped():
    assert RefreshTimer(0, lambda: None).interval_s == RefreshTimer.MIN_INTERVAL_S
    assert RefreshTimer(-5, lambda: None).interval_s == RefreshTimer.MIN_INTERVAL_S
