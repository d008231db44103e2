"""Slot reservations per machine with overlap queries and timed reminders."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from aura.domain.constraints import intervals_overlap, validate_slot_window
from aura.domain.models import (
    LaundrySlot,
    NotificationType,
    Priority,
    SlotRequest,
    SlotStatus,
)
from aura.repository.state_repository import StateRepository
from aura.services.notification_service import NotificationStore
from aura.services.timer_queue import TimerQueue
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingError(Exception):
    """Base exception for slot scheduling failures."""


class SlotNotFoundError(SchedulingError):
    """Raised when a slot id is unknown."""


class SlotStateError(SchedulingError):
    """Raised when a slot is no longer in the ``scheduled`` state."""


class SchedulingConflictError(SchedulingError):
    """Raised by callers that turn a failed availability check into a refusal."""


def describe_lead_time(lead: timedelta) -> str:
    """Human wording for the time left before a slot starts."""
    seconds = lead.total_seconds()
    if seconds > 24 * 3600:
        return f"in {int(seconds // (24 * 3600))} days"
    if seconds >= 3600:
        hours = int(seconds // 3600)
        return "in 1 hour" if hours == 1 else f"in {hours} hours"
    return f"in {int(seconds // 60)} minutes"


class SlotScheduler:
    """Stores slots and registers their reminders on the shared timer queue.

    ``schedule`` does not check for conflicts on its own; callers ask
    ``is_available`` first. Reminders are never revoked: each one re-reads
    the slot when it fires and stays silent unless the slot is still
    scheduled.
    """

    def __init__(
        self,
        notifications: NotificationStore,
        timer_queue: TimerQueue,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)
        self._notifications = notifications
        self._timer_queue = timer_queue

    def is_available(self, residence: str, machine_id: int, start_time: datetime, end_time: datetime) -> bool:
        for slot in self._repository.list_slots(residence=residence, machine_id=machine_id):
            if slot.status is SlotStatus.CANCELLED:
                continue
            if intervals_overlap(start_time, end_time, slot.start_time, slot.end_time):
                return False
        return True

    def schedule(self, request: SlotRequest, now: datetime) -> LaundrySlot:
        validate_slot_window(request.start_time, request.end_time)
        slot = LaundrySlot(
            id=uuid4().hex,
            machine_id=request.machine_id,
            machine_type=request.machine_type,
            start_time=request.start_time,
            end_time=request.end_time,
            user_id=request.user_id,
            residence=request.residence,
            status=SlotStatus.SCHEDULED,
            created_at=now,
        )
        self._repository.save_slot(slot)

        self._notifications.create(
            slot.user_id,
            NotificationType.SLOT_REMINDER,
            "Slot Scheduled",
            (
                f"Your laundry slot for {slot.machine_type.value} {slot.machine_id} "
                f"is scheduled for {slot.start_time:%Y-%m-%d %H:%M}."
            ),
            Priority.MEDIUM,
            now,
            data={"slot_id": slot.id},
        )
        registered = self._register_reminders(slot, now)
        logger.info(
            "Slot scheduled | slot=%s | residence=%s | machine=%s | user=%s | start=%s | reminders=%s",
            slot.id,
            slot.residence,
            slot.machine_id,
            slot.user_id,
            slot.start_time.isoformat(),
            registered,
        )
        return slot

    def cancel(self, slot_id: str, now: datetime) -> LaundrySlot:
        slot = self.get_slot(slot_id)
        if slot.status is not SlotStatus.SCHEDULED:
            raise SlotStateError(f"slot '{slot_id}' is {slot.status.value}, not scheduled")
        cancelled = replace(slot, status=SlotStatus.CANCELLED)
        self._repository.save_slot(cancelled)
        self._notifications.create(
            slot.user_id,
            NotificationType.SLOT_REMINDER,
            "Slot Cancelled",
            f"Your laundry slot for {slot.machine_type.value} {slot.machine_id} has been cancelled.",
            Priority.MEDIUM,
            now,
            data={"slot_id": slot.id},
        )
        logger.info("Slot cancelled | slot=%s | user=%s", slot_id, slot.user_id)
        return cancelled

    def complete(self, slot_id: str) -> LaundrySlot:
        slot = self.get_slot(slot_id)
        if slot.status is not SlotStatus.SCHEDULED:
            raise SlotStateError(f"slot '{slot_id}' is {slot.status.value}, not scheduled")
        completed = replace(slot, status=SlotStatus.COMPLETED)
        self._repository.save_slot(completed)
        logger.info("Slot completed | slot=%s | user=%s", slot_id, slot.user_id)
        return completed

    def get_slot(self, slot_id: str) -> LaundrySlot:
        slot = self._repository.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(f"slot '{slot_id}' not found")
        return slot

    def list_active(self, residence: Optional[str] = None, machine_id: Optional[int] = None) -> list[LaundrySlot]:
        """Every slot that is not cancelled."""
        return [
            slot
            for slot in self._repository.list_slots(residence=residence, machine_id=machine_id)
            if slot.status is not SlotStatus.CANCELLED
        ]

    def upcoming_for_user(self, user_id: str, now: datetime) -> list[LaundrySlot]:
        slots = [
            slot
            for slot in self._repository.list_slots(user_id=user_id)
            if slot.status is SlotStatus.SCHEDULED and slot.start_time > now
        ]
        return sorted(slots, key=lambda slot: slot.start_time)

    def _register_reminders(self, slot: LaundrySlot, now: datetime) -> int:
        registered = 0
        for offset in self._settings.reminder_offsets_minutes:
            fire_at = slot.start_time - timedelta(minutes=offset)
            # Reminders already in the past are dropped, not sent late.
            if fire_at <= now:
                continue
            self._timer_queue.schedule(fire_at, f"slot:{slot.id}:{offset}", self._reminder_for(slot.id))
            registered += 1
        return registered

    def _reminder_for(self, slot_id: str):
        def fire(fire_at: datetime) -> None:
            slot = self._repository.get_slot(slot_id)
            if slot is None or slot.status is not SlotStatus.SCHEDULED:
                logger.info("Reminder suppressed | slot=%s", slot_id)
                return
            self._notifications.create(
                slot.user_id,
                NotificationType.SLOT_REMINDER,
                "Laundry Reminder",
                (
                    f"Your laundry slot for {slot.machine_type.value} {slot.machine_id} "
                    f"starts {describe_lead_time(slot.start_time - fire_at)}."
                ),
                Priority.MEDIUM,
                fire_at,
                data={"slot_id": slot.id},
            )

        return fire
