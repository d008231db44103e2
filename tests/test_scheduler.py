from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from aura.domain.models import MachineType, SlotRequest, SlotStatus
from aura.repository.state_repository import StateRepository
from aura.services.notification_service import NotificationStore
from aura.services.scheduler_service import (
    SlotNotFoundError,
    SlotScheduler,
    SlotStateError,
    describe_lead_time,
)
from aura.services.timer_queue import TimerQueue
from aura.utils.config import get_settings


RESIDENCE = "Dagbreek"
NOW = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


def _request(start: datetime, end: datetime, user: str = "alice", machine_id: int = 1) -> SlotRequest:
    return SlotRequest(
        machine_id=machine_id,
        machine_type=MachineType.WASHER,
        start_time=start,
        end_time=end,
        user_id=user,
        residence=RESIDENCE,
    )


def _build_scheduler():
    get_settings.cache_clear()
    settings = replace(get_settings(), residences=(RESIDENCE, "Irene"), ai_enabled=False)
    repository = StateRepository(settings)
    notifications = NotificationStore(repository=repository, settings=settings)
    timers = TimerQueue()
    scheduler = SlotScheduler(notifications, timers, repository=repository, settings=settings)
    return scheduler, notifications, timers


# --- availability ---

def test_overlapping_request_is_unavailable():
    scheduler, _, _ = _build_scheduler()
    scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    assert scheduler.is_available(RESIDENCE, 1, at(6, 10, 30), at(6, 11, 30)) is False
    assert scheduler.is_available(RESIDENCE, 1, at(6, 9), at(6, 12)) is False


def test_touching_slot_is_available():
    scheduler, _, _ = _build_scheduler()
    scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    assert scheduler.is_available(RESIDENCE, 1, at(6, 11), at(6, 12)) is True
    assert scheduler.is_available(RESIDENCE, 1, at(6, 9), at(6, 10)) is True


def test_other_machine_and_residence_do_not_conflict():
    scheduler, _, _ = _build_scheduler()
    scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    assert scheduler.is_available(RESIDENCE, 2, at(6, 10), at(6, 11)) is True
    assert scheduler.is_available("Irene", 1, at(6, 10), at(6, 11)) is True


def test_cancelled_slot_frees_its_window():
    scheduler, _, _ = _build_scheduler()
    slot = scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    scheduler.cancel(slot.id, NOW)

    assert scheduler.is_available(RESIDENCE, 1, at(6, 10, 30), at(6, 11, 30)) is True
    assert scheduler.list_active(RESIDENCE) == []


def test_schedule_rejects_inverted_window():
    scheduler, _, _ = _build_scheduler()

    with pytest.raises(ValueError):
        scheduler.schedule(_request(at(6, 11), at(6, 10)), NOW)


# --- lifecycle ---

def test_schedule_confirms_with_notification():
    scheduler, notifications, _ = _build_scheduler()

    slot = scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    assert slot.status is SlotStatus.SCHEDULED
    [confirmation] = notifications.list_for("alice")
    assert confirmation.title == "Slot Scheduled"
    assert confirmation.message == "Your laundry slot for Washer 1 is scheduled for 2026-01-06 10:00."
    assert confirmation.data == {"slot_id": slot.id}


def test_cancel_twice_raises_state_error():
    scheduler, notifications, _ = _build_scheduler()
    slot = scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    cancelled = scheduler.cancel(slot.id, NOW + timedelta(minutes=1))

    assert cancelled.status is SlotStatus.CANCELLED
    assert notifications.list_for("alice")[0].title == "Slot Cancelled"
    with pytest.raises(SlotStateError):
        scheduler.cancel(slot.id, NOW)


def test_unknown_slot_raises():
    scheduler, _, _ = _build_scheduler()

    with pytest.raises(SlotNotFoundError):
        scheduler.cancel("missing", NOW)


def test_complete_marks_slot_completed():
    scheduler, _, _ = _build_scheduler()
    slot = scheduler.schedule(_request(at(6, 10), at(6, 11)), NOW)

    completed = scheduler.complete(slot.id)

    assert completed.status is SlotStatus.COMPLETED
    assert scheduler.list_active(RESIDENCE, 1) == [completed]


def test_upcoming_for_user_sorted_and_future_only():
    scheduler, _, _ = _build_scheduler()
    later = scheduler.schedule(_request(at(7, 10), at(7, 11)), NOW)
    sooner = scheduler.schedule(_request(at(6, 10), at(6, 11), machine_id=2), NOW)
    scheduler.schedule(_request(at(6, 12), at(6, 13), user="bob"), NOW)

    assert scheduler.upcoming_for_user("alice", NOW) == [sooner, later]
    assert scheduler.upcoming_for_user("alice", at(6, 12)) == [later]


# --- reminders ---

def test_reminders_registered_only_in_the_future():
    scheduler, _, timers = _build_scheduler()

    scheduler.schedule(_request(at(5, 8, 30), at(5, 9, 30)), NOW)

    assert [task.fire_at for task in timers.pending()] == [at(5, 8, 15)]


def test_all_three_reminders_for_distant_slot():
    scheduler, _, timers = _build_scheduler()

    slot = scheduler.schedule(_request(at(8, 10), at(8, 11)), NOW)

    assert [task.fire_at for task in timers.pending()] == [at(7, 10), at(8, 9), at(8, 9, 45)]
    assert [task.key for task in timers.pending()] == [
        f"slot:{slot.id}:1440",
        f"slot:{slot.id}:60",
        f"slot:{slot.id}:15",
    ]


def test_reminder_wording_follows_fire_time():
    scheduler, notifications, timers = _build_scheduler()
    scheduler.schedule(_request(at(8, 10), at(8, 11)), NOW)

    fired = timers.run_due(at(8, 9, 45))

    assert fired == 3
    reminders = [item for item in notifications.list_for("alice") if item.title == "Laundry Reminder"]
    assert [item.message for item in reminders] == [
        "Your laundry slot for Washer 1 starts in 15 minutes.",
        "Your laundry slot for Washer 1 starts in 1 hour.",
        "Your laundry slot for Washer 1 starts in 24 hours.",
    ]
    assert [item.timestamp for item in reminders] == [at(8, 9, 45), at(8, 9), at(7, 10)]


def test_cancelled_slot_suppresses_reminders():
    scheduler, notifications, timers = _build_scheduler()
    slot = scheduler.schedule(_request(at(8, 10), at(8, 11)), NOW)
    scheduler.cancel(slot.id, NOW)

    fired = timers.run_due(at(8, 10))

    assert fired == 3
    titles = [item.title for item in notifications.list_for("alice")]
    assert "Laundry Reminder" not in titles


def test_describe_lead_time_boundaries():
    assert describe_lead_time(timedelta(days=2, hours=1)) == "in 2 days"
    assert describe_lead_time(timedelta(hours=24)) == "in 24 hours"
    assert describe_lead_time(timedelta(hours=3)) == "in 3 hours"
    assert describe_lead_time(timedelta(hours=1)) == "in 1 hour"
    assert describe_lead_time(timedelta(minutes=59, seconds=59)) == "in 59 minutes"
    assert describe_lead_time(timedelta(minutes=15)) == "in 15 minutes"
