"""Machine-condition feedback with admin escalation for poor reports."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional
from uuid import uuid4

from aura.domain.constraints import validate_rating
from aura.domain.models import (
    MachineCondition,
    MachineFeedback,
    MachineType,
    NotificationType,
    Priority,
    UserRef,
)
from aura.repository.state_repository import StateRepository
from aura.services.notification_service import NotificationStore
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

POOR_RATING_THRESHOLD = 2


class FeedbackError(Exception):
    """Base exception for feedback failures."""


class FeedbackNotFoundError(FeedbackError):
    """Raised when a feedback id is unknown."""


def needs_attention(feedback: MachineFeedback) -> bool:
    return feedback.rating <= POOR_RATING_THRESHOLD or feedback.condition is MachineCondition.BROKEN


class FeedbackService:
    def __init__(
        self,
        notifications: NotificationStore,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)
        self._notifications = notifications

    def submit_feedback(
        self,
        machine_id: int,
        machine_type: MachineType,
        author: UserRef,
        rating: int,
        condition: MachineCondition,
        now: datetime,
        issues: Iterable[str] = (),
        comments: str = "",
    ) -> MachineFeedback:
        validate_rating(rating)
        feedback = MachineFeedback(
            id=uuid4().hex,
            machine_id=machine_id,
            machine_type=machine_type,
            user_id=author.name,
            residence=author.residence,
            rating=rating,
            condition=condition,
            issues=frozenset(issue.strip() for issue in issues if issue.strip()),
            comments=comments.strip(),
            timestamp=now,
        )
        self._repository.save_feedback(feedback)

        if needs_attention(feedback):
            self._notifications.create(
                self._settings.admin_name,
                NotificationType.FEEDBACK_REQUEST,
                "Machine Issue Reported",
                (
                    f"{machine_type.value} {machine_id} reported as {condition.value} "
                    f"by {author.name}."
                ),
                Priority.HIGH,
                now,
                data={"feedback_id": feedback.id, "residence": author.residence},
            )
            logger.warning(
                "Machine issue reported | residence=%s | machine=%s | rating=%s | condition=%s",
                author.residence,
                machine_id,
                rating,
                condition.value,
            )

        self._notifications.create(
            author.name,
            NotificationType.FEEDBACK_REQUEST,
            "Thank You!",
            (
                f"Thank you for your feedback on {machine_type.value} {machine_id}. "
                "We'll look into any issues."
            ),
            Priority.LOW,
            now,
        )
        logger.info(
            "Feedback submitted | id=%s | machine=%s | user=%s | rating=%s",
            feedback.id,
            machine_id,
            author.name,
            rating,
        )
        return feedback

    def list_feedback(
        self,
        residence: Optional[str] = None,
        unresolved_only: bool = False,
    ) -> list[MachineFeedback]:
        items = self._repository.list_feedback()
        if residence is not None:
            items = [item for item in items if item.residence == residence]
        if unresolved_only:
            items = [item for item in items if not item.resolved]
        return items

    def resolve_feedback(self, feedback_id: str) -> MachineFeedback:
        feedback = self._repository.get_feedback(feedback_id)
        if feedback is None:
            raise FeedbackNotFoundError(f"feedback '{feedback_id}' not found")
        resolved = replace(feedback, resolved=True)
        self._repository.save_feedback(resolved)
        logger.info("Feedback resolved | id=%s", feedback_id)
        return resolved
