"""Time sources and the periodic tick driver."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Callable, Optional, Protocol

from aura.utils.logger import get_logger


logger = get_logger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Virtual time that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = value

    def advance(self, **delta: float) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now


def round_minutes(delta: timedelta) -> int:
    """Round a signed duration to whole minutes, halves away from -inf."""
    return int(math.floor(delta.total_seconds() / 60.0 + 0.5))


class TickDriver:
    """Fires ``callback`` roughly every ``interval_seconds`` on a daemon thread.

    Carries no business logic. A failing callback is logged and the loop
    keeps going; ``stop`` waits at most one interval plus ``timeout``.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        interval_seconds: float,
        name: str = "aura-tick",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._callback = callback
        self._interval = interval_seconds
        self._name = name
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._lock = Lock()
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
            logger.info("Tick driver started | interval=%.2fs", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            thread.join(timeout=self._interval + timeout)
            self._thread = None
            logger.info("Tick driver stopped | ticks=%s", self.tick_count)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Tick callback failed")
            self.tick_count += 1
