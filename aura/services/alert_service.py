"""Short-lived in-app alerts with level-based auto-dismiss."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from aura.domain.models import Alert, NotificationLevel, UserRef
from aura.repository.state_repository import StateRepository
from aura.services.escalation_service import AUTO_DISMISS_SECONDS, EscalationEvent
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

LEVEL_KINDS: dict[NotificationLevel, str] = {
    NotificationLevel.NORMAL: "info",
    NotificationLevel.URGENT: "warning",
    NotificationLevel.FINAL: "urgent",
}


class AlertFeedService:
    """Stores alerts and filters them per viewer at read time."""

    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)

    def publish(
        self,
        recipient: Optional[UserRef],
        message: str,
        level: NotificationLevel,
        now: datetime,
        *,
        kind: Optional[str] = None,
        machine_id: Optional[int] = None,
    ) -> Alert:
        alert = Alert(
            id=uuid4().hex,
            recipient=recipient,
            message=message,
            level=level,
            kind=kind or LEVEL_KINDS[level],
            timestamp=now,
            dismiss_at=now + timedelta(seconds=AUTO_DISMISS_SECONDS[level]),
            machine_id=machine_id,
        )
        self._repository.save_alert(alert)
        return alert

    def publish_event(self, event: EscalationEvent) -> Alert:
        return self.publish(
            event.recipient,
            event.message,
            event.level,
            event.occurred_at,
            machine_id=event.machine_id,
        )

    def active_for(self, viewer: UserRef, now: datetime) -> list[Alert]:
        """Undismissed alerts addressed to exactly this viewer."""
        return [
            alert
            for alert in self._repository.list_alerts()
            if alert.recipient == viewer and alert.dismiss_at > now
        ]

    def prune(self, now: datetime) -> int:
        cutoff = now - timedelta(minutes=self._settings.alert_retention_minutes)
        removed = self._repository.prune_alerts(cutoff)
        if removed:
            logger.info("Alerts pruned | removed=%s", removed)
        return removed
