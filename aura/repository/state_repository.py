"""Repository layer holding all process-resident state."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Iterable, Optional, Sequence

from aura.domain.models import (
    Alert,
    LaundrySlot,
    Machine,
    MachineFeedback,
    MachineType,
    QueueEntry,
    SlotStatus,
    UserNotification,
    UserProfile,
)
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class UnknownResidenceError(KeyError):
    """Raised when a residence group has not been initialised."""


class StateRepository:
    """Encapsulates in-memory storage so business logic stays storage-agnostic.

    Machines are partitioned by residence and each partition has its own
    re-entrant lock: tick transitions and user commands on one residence
    serialise through it. Every other collection shares ``_lock``.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._lock = RLock()
        self._machines: dict[str, OrderedDict[int, Machine]] = {}
        self._residence_locks: dict[str, RLock] = {}
        self._users: OrderedDict[str, UserProfile] = OrderedDict()
        self._queues: dict[tuple[str, int], list[QueueEntry]] = {}
        self._slots: OrderedDict[str, LaundrySlot] = OrderedDict()
        self._feedback: OrderedDict[str, MachineFeedback] = OrderedDict()
        self._notifications: OrderedDict[str, UserNotification] = OrderedDict()
        self._alerts: OrderedDict[str, Alert] = OrderedDict()

    # ------------------------------------------------------------------
    # Machines
    # ------------------------------------------------------------------
    def initialize_machines(self, residences: Optional[Sequence[str]] = None) -> None:
        """Create washers then dryers with sequential ids per residence.

        Idempotent: residences that already exist keep their state.
        """
        targets = list(residences or self._settings.residences)
        washers = self._settings.washers_per_residence
        dryers = self._settings.dryers_per_residence
        with self._lock:
            for residence in targets:
                if residence in self._machines:
                    continue
                machines: OrderedDict[int, Machine] = OrderedDict()
                for index in range(washers):
                    machine_id = index + 1
                    machines[machine_id] = Machine(
                        id=machine_id,
                        type=MachineType.WASHER,
                        residence=residence,
                    )
                for index in range(dryers):
                    machine_id = washers + index + 1
                    machines[machine_id] = Machine(
                        id=machine_id,
                        type=MachineType.DRYER,
                        residence=residence,
                    )
                self._machines[residence] = machines
                self._residence_locks[residence] = RLock()
        logger.info(
            "Machines initialized | residences=%s | washers=%s | dryers=%s",
            len(targets),
            washers,
            dryers,
        )

    def list_residences(self) -> list[str]:
        with self._lock:
            return list(self._machines)

    def residence_lock(self, residence: str) -> RLock:
        with self._lock:
            lock = self._residence_locks.get(residence)
        if lock is None:
            raise UnknownResidenceError(residence)
        return lock

    def get_machine(self, residence: str, machine_id: int) -> Optional[Machine]:
        with self._lock:
            machines = self._machines.get(residence)
            if machines is None:
                raise UnknownResidenceError(residence)
            return machines.get(machine_id)

    def list_machines(self, residence: str) -> list[Machine]:
        with self._lock:
            machines = self._machines.get(residence)
            if machines is None:
                raise UnknownResidenceError(residence)
            return list(machines.values())

    def save_machine(self, machine: Machine) -> None:
        with self._lock:
            machines = self._machines.get(machine.residence)
            if machines is None:
                raise UnknownResidenceError(machine.residence)
            machines[machine.id] = machine

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user(self, name: str) -> Optional[UserProfile]:
        with self._lock:
            return self._users.get(name)

    def add_user(self, user: UserProfile) -> UserProfile:
        with self._lock:
            existing = self._users.get(user.name)
            if existing is not None:
                return existing
            self._users[user.name] = user
            return user

    def list_users(self) -> list[UserProfile]:
        """Users in registration order."""
        with self._lock:
            return list(self._users.values())

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------
    def get_queue(self, residence: str, machine_id: int) -> list[QueueEntry]:
        with self._lock:
            return list(self._queues.get((residence, machine_id), []))

    def save_queue(self, residence: str, machine_id: int, entries: Iterable[QueueEntry]) -> None:
        with self._lock:
            self._queues[(residence, machine_id)] = list(entries)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------
    def get_slot(self, slot_id: str) -> Optional[LaundrySlot]:
        with self._lock:
            return self._slots.get(slot_id)

    def save_slot(self, slot: LaundrySlot) -> None:
        with self._lock:
            self._slots[slot.id] = slot

    def list_slots(
        self,
        *,
        residence: Optional[str] = None,
        machine_id: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> list[LaundrySlot]:
        with self._lock:
            slots = list(self._slots.values())
        return [
            slot
            for slot in slots
            if (residence is None or slot.residence == residence)
            and (machine_id is None or slot.machine_id == machine_id)
            and (user_id is None or slot.user_id == user_id)
        ]

    def prune_slots(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [
                slot_id
                for slot_id, slot in self._slots.items()
                if slot.status is not SlotStatus.SCHEDULED and slot.start_time <= cutoff
            ]
            for slot_id in stale:
                del self._slots[slot_id]
            return len(stale)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------
    def save_feedback(self, feedback: MachineFeedback) -> None:
        with self._lock:
            self._feedback[feedback.id] = feedback

    def get_feedback(self, feedback_id: str) -> Optional[MachineFeedback]:
        with self._lock:
            return self._feedback.get(feedback_id)

    def list_feedback(self) -> list[MachineFeedback]:
        with self._lock:
            return list(self._feedback.values())

    def prune_feedback(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [key for key, item in self._feedback.items() if item.timestamp <= cutoff]
            for key in stale:
                del self._feedback[key]
            return len(stale)

    # ------------------------------------------------------------------
    # User notifications
    # ------------------------------------------------------------------
    def save_notification(self, notification: UserNotification) -> None:
        with self._lock:
            self._notifications[notification.id] = notification

    def get_notification(self, notification_id: str) -> Optional[UserNotification]:
        with self._lock:
            return self._notifications.get(notification_id)

    def list_notifications(self, user_id: Optional[str] = None) -> list[UserNotification]:
        with self._lock:
            items = list(self._notifications.values())
        if user_id is None:
            return items
        return [item for item in items if item.user_id == user_id]

    def mark_notification_read(self, notification_id: str) -> Optional[UserNotification]:
        with self._lock:
            current = self._notifications.get(notification_id)
            if current is None:
                return None
            updated = replace(current, read=True)
            self._notifications[notification_id] = updated
            return updated

    def prune_notifications(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [key for key, item in self._notifications.items() if item.timestamp <= cutoff]
            for key in stale:
                del self._notifications[key]
            return len(stale)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------
    def save_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts[alert.id] = alert

    def list_alerts(self) -> list[Alert]:
        with self._lock:
            return list(self._alerts.values())

    def prune_alerts(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [key for key, item in self._alerts.items() if item.timestamp <= cutoff]
            for key in stale:
                del self._alerts[key]
            return len(stale)
