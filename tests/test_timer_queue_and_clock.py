from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from aura.services.clock import ManualClock, TickDriver, round_minutes
from aura.services.timer_queue import TimerQueue


START = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(minutes=3), 3),
        (timedelta(minutes=3, seconds=29), 3),
        (timedelta(minutes=3, seconds=30), 4),
        (timedelta(seconds=-29), 0),
        (timedelta(seconds=-30), 0),
        (timedelta(seconds=-31), -1),
        (timedelta(minutes=-2, seconds=-40), -3),
    ],
)
def test_round_minutes_rounds_halves_up(delta, expected):
    assert round_minutes(delta) == expected


def test_manual_clock_only_moves_when_told():
    clock = ManualClock(START)

    assert clock.now() == START
    assert clock.advance(minutes=5) == START + timedelta(minutes=5)
    clock.set(START)
    assert clock.now() == START


def test_timer_queue_runs_due_tasks_in_fire_order():
    timers = TimerQueue()
    fired: list[tuple[str, datetime]] = []
    timers.schedule(START + timedelta(minutes=10), "late", lambda at: fired.append(("late", at)))
    timers.schedule(START + timedelta(minutes=5), "early", lambda at: fired.append(("early", at)))
    timers.schedule(START + timedelta(minutes=5), "early-2", lambda at: fired.append(("early-2", at)))

    assert timers.next_fire_time() == START + timedelta(minutes=5)
    assert timers.run_due(START + timedelta(minutes=4)) == 0
    assert timers.run_due(START + timedelta(minutes=5)) == 2
    assert [name for name, _ in fired] == ["early", "early-2"]
    assert fired[0][1] == START + timedelta(minutes=5)
    assert len(timers) == 1


def test_timer_queue_keeps_running_after_failing_task():
    timers = TimerQueue()
    fired: list[str] = []

    def broken(_at: datetime) -> None:
        raise RuntimeError("reminder failed")

    timers.schedule(START, "broken", broken)
    timers.schedule(START, "ok", lambda _at: fired.append("ok"))

    assert timers.run_due(START) == 2
    assert fired == ["ok"]
    assert len(timers) == 0


def test_callbacks_may_schedule_new_tasks():
    timers = TimerQueue()
    fired: list[str] = []

    def chain(at: datetime) -> None:
        fired.append("first")
        timers.schedule(at + timedelta(minutes=1), "second", lambda _at: fired.append("second"))

    timers.schedule(START, "first", chain)
    timers.run_due(START)
    timers.run_due(START + timedelta(minutes=1))

    assert fired == ["first", "second"]


def test_tick_driver_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        TickDriver(lambda: None, 0)


def test_tick_driver_fires_and_stops():
    ticked = threading.Event()
    driver = TickDriver(ticked.set, 0.01)

    driver.start()
    try:
        assert ticked.wait(timeout=2.0)
        assert driver.running
    finally:
        driver.stop()

    assert driver.running is False
    assert driver.tick_count >= 1


def test_tick_driver_survives_callback_errors():
    calls: list[int] = []
    done = threading.Event()

    def flaky() -> None:
        calls.append(1)
        if len(calls) >= 2:
            done.set()
        raise RuntimeError("tick failed")

    driver = TickDriver(flaky, 0.01)
    driver.start()
    try:
        assert done.wait(timeout=2.0)
    finally:
        driver.stop()

    assert len(calls) >= 2
