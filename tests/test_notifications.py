from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from aura.domain.models import MachineCondition, MachineType, NotificationType, Priority, UserRef
from aura.repository.state_repository import StateRepository
from aura.services.feedback_service import FeedbackNotFoundError, FeedbackService, needs_attention
from aura.services.notification_service import NotificationNotFoundError, NotificationStore
from aura.utils.config import get_settings


NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
ALICE = UserRef(name="alice", residence="Dagbreek")


def _build_store():
    get_settings.cache_clear()
    settings = replace(get_settings(), residences=("Dagbreek",), ai_enabled=False)
    repository = StateRepository(settings)
    return NotificationStore(repository=repository, settings=settings), repository, settings


def _note(store: NotificationStore, user: str, title: str, at: datetime):
    return store.create(user, NotificationType.QUEUE_UPDATE, title, "body", Priority.LOW, at)


def test_list_for_returns_newest_first():
    store, _, _ = _build_store()
    _note(store, "alice", "first", NOW)
    _note(store, "alice", "second", NOW + timedelta(minutes=1))
    _note(store, "alice", "same-time", NOW + timedelta(minutes=1))
    _note(store, "bob", "other", NOW)

    assert [item.title for item in store.list_for("alice")] == ["same-time", "second", "first"]


def test_mark_read_and_unread_count():
    store, _, _ = _build_store()
    first = _note(store, "alice", "first", NOW)
    _note(store, "alice", "second", NOW)

    store.mark_read(first.id)

    assert store.get(first.id).read is True
    assert store.unread_count("alice") == 1
    with pytest.raises(NotificationNotFoundError):
        store.mark_read("missing")


def test_cleanup_drops_records_older_than_retention():
    store, repository, settings = _build_store()
    feedback = FeedbackService(store, repository=repository, settings=settings)
    _note(store, "alice", "stale", NOW - timedelta(days=8))
    _note(store, "alice", "fresh", NOW - timedelta(days=6))
    feedback.submit_feedback(1, MachineType.WASHER, ALICE, 4, MachineCondition.GOOD, NOW - timedelta(days=9))

    removed = store.cleanup(NOW)

    assert removed["notifications"] == 2
    assert removed["feedback"] == 1
    assert [item.title for item in store.list_for("alice")] == ["fresh"]


def test_needs_attention_thresholds():
    store, repository, settings = _build_store()
    service = FeedbackService(store, repository=repository, settings=settings)

    poor = service.submit_feedback(1, MachineType.WASHER, ALICE, 2, MachineCondition.FAIR, NOW)
    broken = service.submit_feedback(2, MachineType.WASHER, ALICE, 5, MachineCondition.BROKEN, NOW)
    fine = service.submit_feedback(3, MachineType.WASHER, ALICE, 3, MachineCondition.GOOD, NOW)

    assert needs_attention(poor)
    assert needs_attention(broken)
    assert not needs_attention(fine)
    assert len(store.list_for(settings.admin_name)) == 2


def test_resolve_unknown_feedback_raises():
    store, repository, settings = _build_store()
    service = FeedbackService(store, repository=repository, settings=settings)

    with pytest.raises(FeedbackNotFoundError):
        service.resolve_feedback("missing")
