"""Per-machine FIFO waiting lists with dense positions."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Optional
from uuid import uuid4

from aura.domain.models import NotificationType, Priority, QueueEntry, UserRef
from aura.repository.state_repository import StateRepository
from aura.services.notification_service import NotificationStore
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class QueueError(Exception):
    """Base exception for queue failures."""


class AlreadyQueuedError(QueueError):
    """Raised when a user joins a queue they are already in."""


class QueueEntryNotFoundError(QueueError):
    """Raised when leaving a queue the user is not part of."""


class QueueManager:
    """Keeps positions a contiguous 1..N and notifies members of changes.

    Only members whose position actually moved get a "Queue Update", and
    only while they have not yet been told the machine is theirs.
    """

    def __init__(
        self,
        notifications: NotificationStore,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)
        self._notifications = notifications
        self._lock = RLock()

    def estimate_wait(self, position: int) -> int:
        return position * self._settings.queue_minutes_per_turn

    def get_queue(self, residence: str, machine_id: int) -> list[QueueEntry]:
        return self._repository.get_queue(residence, machine_id)

    def position_of(self, residence: str, machine_id: int, user_id: str) -> Optional[QueueEntry]:
        for entry in self.get_queue(residence, machine_id):
            if entry.user_id == user_id:
                return entry
        return None

    def join(self, machine_id: int, user: UserRef, now: datetime) -> QueueEntry:
        with self._lock:
            queue = self._repository.get_queue(user.residence, machine_id)
            if any(entry.user_id == user.name for entry in queue):
                raise AlreadyQueuedError(
                    f"{user.name} is already queued for machine {machine_id}"
                )
            position = len(queue) + 1
            entry = QueueEntry(
                id=uuid4().hex,
                machine_id=machine_id,
                residence=user.residence,
                user_id=user.name,
                position=position,
                estimated_wait_minutes=self.estimate_wait(position),
                joined_at=now,
            )
            queue.append(entry)
            self._repository.save_queue(user.residence, machine_id, queue)

        self._notifications.create(
            user.name,
            NotificationType.QUEUE_UPDATE,
            "Added to Queue",
            (
                f"You're #{position} in line for machine {machine_id}. "
                f"Estimated wait: {entry.estimated_wait_minutes} minutes."
            ),
            Priority.MEDIUM,
            now,
        )
        logger.info(
            "Queue joined | residence=%s | machine=%s | user=%s | position=%s",
            user.residence,
            machine_id,
            user.name,
            position,
        )
        return entry

    def leave(self, residence: str, machine_id: int, user_id: str, now: datetime) -> list[QueueEntry]:
        with self._lock:
            queue = self._repository.get_queue(residence, machine_id)
            remaining = [entry for entry in queue if entry.user_id != user_id]
            if len(remaining) == len(queue):
                raise QueueEntryNotFoundError(
                    f"{user_id} is not queued for machine {machine_id}"
                )
            compacted: list[QueueEntry] = []
            moved: list[QueueEntry] = []
            for index, entry in enumerate(remaining, start=1):
                updated = replace(
                    entry,
                    position=index,
                    estimated_wait_minutes=self.estimate_wait(index),
                )
                compacted.append(updated)
                if updated.position != entry.position:
                    moved.append(updated)
            self._repository.save_queue(residence, machine_id, compacted)

        for entry in moved:
            if entry.notified:
                continue
            self._notifications.create(
                entry.user_id,
                NotificationType.QUEUE_UPDATE,
                "Queue Update",
                f"You're now #{entry.position} in line for machine {machine_id}.",
                Priority.LOW,
                now,
            )
        logger.info(
            "Queue left | residence=%s | machine=%s | user=%s | remaining=%s",
            residence,
            machine_id,
            user_id,
            len(compacted),
        )
        return compacted

    def notify_next(self, residence: str, machine_id: int, now: datetime) -> Optional[QueueEntry]:
        """Tell the head of the queue the machine is available; does not dequeue."""
        with self._lock:
            queue = self._repository.get_queue(residence, machine_id)
            if not queue:
                return None
            head = replace(queue[0], notified=True)
            queue[0] = head
            self._repository.save_queue(residence, machine_id, queue)

        self._notifications.create(
            head.user_id,
            NotificationType.MACHINE_AVAILABLE,
            "Machine Available!",
            f"Machine {machine_id} is now available. You're next in line!",
            Priority.HIGH,
            now,
        )
        logger.info(
            "Queue head notified | residence=%s | machine=%s | user=%s",
            residence,
            machine_id,
            head.user_id,
        )
        return head
