"""Append-only user notifications with read flags and retention."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import uuid4

from aura.domain.models import NotificationType, Priority, UserNotification
from aura.repository.state_repository import StateRepository
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class NotificationError(Exception):
    """Base exception for notification store failures."""


class NotificationNotFoundError(NotificationError):
    """Raised when a notification id is unknown."""


class NotificationStore:
    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)

    def create(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        priority: Priority,
        now: datetime,
        data: Optional[dict[str, Any]] = None,
    ) -> UserNotification:
        notification = UserNotification(
            id=uuid4().hex,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            timestamp=now,
            data=data,
        )
        self._repository.save_notification(notification)
        logger.info(
            "Notification created | user=%s | type=%s | priority=%s",
            user_id,
            type.value,
            priority.value,
        )
        return notification

    def list_for(self, user_id: str) -> list[UserNotification]:
        """Newest first; ties keep reverse creation order."""
        items = self._repository.list_notifications(user_id)
        return sorted(reversed(items), key=lambda item: item.timestamp, reverse=True)

    def get(self, notification_id: str) -> UserNotification:
        notification = self._repository.get_notification(notification_id)
        if notification is None:
            raise NotificationNotFoundError(f"notification '{notification_id}' not found")
        return notification

    def mark_read(self, notification_id: str) -> UserNotification:
        updated = self._repository.mark_notification_read(notification_id)
        if updated is None:
            raise NotificationNotFoundError(f"notification '{notification_id}' not found")
        return updated

    def unread_count(self, user_id: str) -> int:
        return sum(1 for item in self._repository.list_notifications(user_id) if not item.read)

    def cleanup(self, now: datetime) -> dict[str, int]:
        """Apply the retention window to notifications, feedback and finished slots."""
        cutoff = now - timedelta(days=self._settings.notification_retention_days)
        removed = {
            "notifications": self._repository.prune_notifications(cutoff),
            "feedback": self._repository.prune_feedback(cutoff),
            "slots": self._repository.prune_slots(cutoff),
        }
        logger.info(
            "Retention cleanup | notifications=%s | feedback=%s | slots=%s",
            removed["notifications"],
            removed["feedback"],
            removed["slots"],
        )
        return removed
