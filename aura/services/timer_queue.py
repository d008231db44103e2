"""Single heap-ordered queue of one-shot delayed tasks."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Callable

from aura.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(order=True)
class TimerTask:
    fire_at: datetime
    sequence: int
    key: str = field(compare=False)
    callback: Callable[[datetime], None] = field(compare=False, repr=False)


class TimerQueue:
    """Holds tasks keyed by fire time; the tick loop drains what is due.

    Tasks are never revoked. Owners guard stale work inside the callback
    (e.g. a reminder re-reads its slot status when it fires).
    """

    def __init__(self) -> None:
        self._heap: list[TimerTask] = []
        self._counter = itertools.count()
        self._lock = Lock()

    def schedule(self, fire_at: datetime, key: str, callback: Callable[[datetime], None]) -> TimerTask:
        task = TimerTask(fire_at=fire_at, sequence=next(self._counter), key=key, callback=callback)
        with self._lock:
            heapq.heappush(self._heap, task)
        return task

    def pending(self) -> list[TimerTask]:
        with self._lock:
            return sorted(self._heap)

    def next_fire_time(self) -> datetime | None:
        with self._lock:
            return self._heap[0].fire_at if self._heap else None

    def run_due(self, now: datetime) -> int:
        """Run every task with ``fire_at <= now``; callbacks run outside the lock."""
        due: list[TimerTask] = []
        with self._lock:
            while self._heap and self._heap[0].fire_at <= now:
                due.append(heapq.heappop(self._heap))

        for task in due:
            try:
                task.callback(task.fire_at)
            except Exception:
                logger.exception("Timer task failed | key=%s", task.key)
        return len(due)

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)
