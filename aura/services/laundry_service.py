"""Laundry workflow orchestration: the command surface behind the API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from aura.domain.models import (
    Alert,
    LaundrySlot,
    LeaderboardEntry,
    Machine,
    MachineCondition,
    MachineFeedback,
    MachineStatus,
    MachineType,
    NotificationLevel,
    NotificationType,
    Priority,
    QueueEntry,
    SlotRequest,
    UserNotification,
    UserProfile,
)
from aura.repository.state_repository import StateRepository
from aura.services.alert_service import AlertFeedService
from aura.services.auth_service import Session, SessionService
from aura.services.clock import Clock, SystemClock
from aura.services.escalation_service import IDLE_TOO_LONG, EscalationEngine, EscalationEvent
from aura.services.feedback_service import FeedbackService
from aura.services.gamification_service import (
    CollectionOutcome,
    GamificationLedger,
    ResidenceStats,
)
from aura.services.machine_registry import (
    ADMIN_CANNOT_OPERATE,
    NOT_FREE,
    InvalidTransitionError,
    MachineRegistryService,
    ResidenceNotFoundError,
    ResidenceUsage,
)
from aura.services.notification_service import NotificationStore
from aura.services.prediction_service import (
    ADMIN_CHAT_REPLY,
    DelayPrediction,
    DelayPredictionService,
)
from aura.services.queue_service import QueueManager
from aura.services.scheduler_service import SchedulingConflictError, SlotScheduler
from aura.services.timer_queue import TimerQueue
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

SUCCESS = "success"
INFO = "info"
WARNING = "warning"


class LaundryWorkflowError(Exception):
    """Base exception for workflow failures."""


class PermissionDeniedError(LaundryWorkflowError):
    """Raised when a user acts on something that is not theirs."""


class NothingToReportError(LaundryWorkflowError):
    """Raised when a forgotten-laundry report names no occupant."""


@dataclass(frozen=True)
class CycleStart:
    machine: Machine
    prediction: Optional[DelayPrediction]


@dataclass(frozen=True)
class CollectionReport:
    machine: Machine
    delay_minutes: int
    outcome: CollectionOutcome
    next_in_queue: Optional[QueueEntry]


@dataclass(frozen=True)
class TickReport:
    events: list[EscalationEvent]
    timers_fired: int
    alerts_pruned: int


class LaundryWorkflowService:
    """Coordinates start -> tick -> collect plus the queue, slot and feedback flows.

    Every service is injected; the application context builds one of each
    and shares them by reference.
    """

    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        registry: Optional[MachineRegistryService] = None,
        escalation: Optional[EscalationEngine] = None,
        alerts: Optional[AlertFeedService] = None,
        notifications: Optional[NotificationStore] = None,
        ledger: Optional[GamificationLedger] = None,
        queue: Optional[QueueManager] = None,
        scheduler: Optional[SlotScheduler] = None,
        feedback: Optional[FeedbackService] = None,
        predictor: Optional[DelayPredictionService] = None,
        sessions: Optional[SessionService] = None,
        timer_queue: Optional[TimerQueue] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)
        self._repository.initialize_machines()
        self._clock = clock or SystemClock()
        self._timer_queue = timer_queue or TimerQueue()
        self._registry = registry or MachineRegistryService(self._repository, self._settings)
        self._escalation = escalation or EscalationEngine(self._registry, self._settings)
        self._alerts = alerts or AlertFeedService(self._repository, self._settings)
        self._notifications = notifications or NotificationStore(self._repository, self._settings)
        self._ledger = ledger or GamificationLedger(self._repository, self._settings)
        self._queue = queue or QueueManager(self._notifications, self._repository, self._settings)
        self._scheduler = scheduler or SlotScheduler(
            self._notifications,
            self._timer_queue,
            self._repository,
            self._settings,
        )
        self._feedback = feedback or FeedbackService(self._notifications, self._repository, self._settings)
        self._predictor = predictor or DelayPredictionService(settings=self._settings)
        self._sessions = sessions or SessionService(self._ledger, self._settings)
        self._last_cleanup: Optional[datetime] = None

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def sessions(self) -> SessionService:
        return self._sessions

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    def login(self, name: str, residence: str) -> Session:
        session = self._sessions.login(name, residence)
        self._alerts.publish(
            session.user.ref,
            f"Welcome to DYP Aura, {session.user.name}! 🎉",
            NotificationLevel.NORMAL,
            self._clock.now(),
        )
        return session

    # ------------------------------------------------------------------
    # Machine lifecycle
    # ------------------------------------------------------------------
    def start_cycle(self, user: UserProfile, machine_id: int, duration_minutes: int) -> CycleStart:
        self._refuse_admin(user)
        machine = self._registry.get_machine(user.residence, machine_id)
        allowed = self._allowed_durations(machine)
        if duration_minutes not in allowed:
            raise ValueError(
                f"duration_minutes for a {machine.type.value} must be one of {list(allowed)}"
            )
        # Cheap refusal before the remote call; the registry re-checks under the lock.
        if machine.status is not MachineStatus.FREE:
            raise InvalidTransitionError(
                NOT_FREE,
                f"{machine.label} is {machine.status.value}, not Free",
            )

        # The remote call runs outside every state lock.
        prediction = self._predict(user, duration_minutes)
        now = self._clock.now()
        machine = self._registry.start_cycle(
            user.residence,
            machine_id,
            user.ref,
            duration_minutes,
            prediction.delay_minutes if prediction is not None else 0,
            now,
        )

        if self._queue.position_of(user.residence, machine_id, user.name) is not None:
            self._queue.leave(user.residence, machine_id, user.name, now)

        self._alerts.publish(
            user.ref,
            f"Cycle started for {machine.label}!",
            NotificationLevel.NORMAL,
            now,
            kind=SUCCESS,
            machine_id=machine_id,
        )
        if prediction is None:
            self._alerts.publish(
                user.ref,
                "Could not get AI prediction. Using standard timer.",
                NotificationLevel.NORMAL,
                now,
                kind=WARNING,
                machine_id=machine_id,
            )
        else:
            self._alerts.publish(user.ref, prediction.message, NotificationLevel.NORMAL, now, kind=INFO)
        return CycleStart(machine=machine, prediction=prediction)

    def collect_laundry(self, user: UserProfile, machine_id: int) -> CollectionReport:
        self._refuse_admin(user)
        now = self._clock.now()
        with self._registry.lock_for(user.residence):
            # A deadline that passed since the last tick is applied first so
            # the collect is checked against the freshest state.
            event = self._escalation.evaluate(user.residence, machine_id, now)
            try:
                result = self._registry.collect(user.residence, machine_id, user.ref, now)
            except InvalidTransitionError:
                # The transition is already saved; the next tick will not re-emit it.
                if event is not None:
                    self._alerts.publish_event(event)
                raise
        if event is not None and event.kind != IDLE_TOO_LONG:
            self._alerts.publish_event(event)

        outcome = self._ledger.record_collection(user.name, result.delay_minutes, now)
        machine = result.machine
        if outcome.on_time:
            message = (
                f"🎉 Great job! Collected laundry on time from {machine.label}. "
                f"+{outcome.points_awarded} points!"
            )
        else:
            message = f"Collected laundry from {machine.label}. Keep improving!"
        self._alerts.publish(user.ref, message, NotificationLevel.NORMAL, now, machine_id=machine_id)
        for badge in outcome.new_badges:
            self._alerts.publish(
                user.ref,
                f"🏆 New Badge Earned: {badge.name}! {badge.icon}",
                NotificationLevel.NORMAL,
                now,
            )

        next_entry = self._queue.notify_next(user.residence, machine_id, now)
        return CollectionReport(
            machine=result.released,
            delay_minutes=result.delay_minutes,
            outcome=outcome,
            next_in_queue=next_entry,
        )

    def report_forgotten(
        self,
        reporter: UserProfile,
        residence: str,
        machine_id: int,
        forgotten_user: Optional[str] = None,
    ) -> list[UserNotification]:
        machine = self._registry.get_machine(residence, machine_id)
        target = forgotten_user or (machine.occupant.name if machine.occupant else None)
        if not target:
            raise NothingToReportError(f"{machine.label} has no occupant to notify")

        now = self._clock.now()
        sent = [
            self._notifications.create(
                target,
                NotificationType.FORGOTTEN_LAUNDRY,
                "Laundry Forgotten!",
                f"You forgot to collect your laundry from machine {machine_id}. Please collect it soon!",
                Priority.HIGH,
                now,
            )
        ]
        queue = self._queue.get_queue(residence, machine_id)
        if queue:
            sent.append(
                self._notifications.create(
                    queue[0].user_id,
                    NotificationType.FORGOTTEN_LAUNDRY,
                    "Machine Delayed",
                    (
                        f"Machine {machine_id} is delayed due to forgotten laundry. "
                        "We'll notify you when it's available."
                    ),
                    Priority.MEDIUM,
                    now,
                )
            )
        self._alerts.publish(
            reporter.ref,
            f"Notified {target} about forgotten laundry",
            NotificationLevel.NORMAL,
            now,
        )
        logger.info(
            "Forgotten laundry reported | residence=%s | machine=%s | occupant=%s | reporter=%s",
            residence,
            machine_id,
            target,
            reporter.name,
        )
        return sent

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def tick(self, now: Optional[datetime] = None) -> TickReport:
        now = now or self._clock.now()
        events = self._escalation.tick(now)
        for event in events:
            self._alerts.publish_event(event)
        fired = self._timer_queue.run_due(now)
        pruned = self._alerts.prune(now)
        if self._last_cleanup is None or now - self._last_cleanup >= timedelta(hours=1):
            self._notifications.cleanup(now)
            self._last_cleanup = now
        return TickReport(events=events, timers_fired=fired, alerts_pruned=pruned)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    def join_queue(self, user: UserProfile, machine_id: int) -> QueueEntry:
        self._require_student(user)
        self._registry.get_machine(user.residence, machine_id)
        return self._queue.join(machine_id, user.ref, self._clock.now())

    def leave_queue(self, user: UserProfile, machine_id: int) -> list[QueueEntry]:
        self._require_student(user)
        return self._queue.leave(user.residence, machine_id, user.name, self._clock.now())

    def queue_for(self, residence: str, machine_id: int) -> list[QueueEntry]:
        self._registry.get_machine(residence, machine_id)
        return self._queue.get_queue(residence, machine_id)

    def notify_next_in_queue(self, residence: str, machine_id: int) -> Optional[QueueEntry]:
        machine = self._registry.get_machine(residence, machine_id)
        if machine.status is not MachineStatus.FREE:
            logger.info(
                "Queue notify skipped | residence=%s | machine=%s | status=%s",
                residence,
                machine_id,
                machine.status.value,
            )
            return None
        return self._queue.notify_next(residence, machine_id, self._clock.now())

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------
    def check_availability(self, residence: str, machine_id: int, start: datetime, end: datetime) -> bool:
        self._registry.get_machine(residence, machine_id)
        return self._scheduler.is_available(residence, machine_id, start, end)

    def schedule_slot(self, user: UserProfile, machine_id: int, start: datetime, end: datetime) -> LaundrySlot:
        self._require_student(user)
        machine = self._registry.get_machine(user.residence, machine_id)
        now = self._clock.now()
        with self._registry.lock_for(user.residence):
            if not self._scheduler.is_available(user.residence, machine_id, start, end):
                raise SchedulingConflictError(
                    f"{machine.label} is already reserved between {start:%H:%M} and {end:%H:%M}"
                )
            slot = self._scheduler.schedule(
                SlotRequest(
                    machine_id=machine_id,
                    machine_type=machine.type,
                    start_time=start,
                    end_time=end,
                    user_id=user.name,
                    residence=user.residence,
                ),
                now,
            )
        self._alerts.publish(
            user.ref,
            f"Slot scheduled for {machine.label}!",
            NotificationLevel.NORMAL,
            now,
            machine_id=machine_id,
        )
        return slot

    def cancel_slot(self, user: UserProfile, slot_id: str) -> LaundrySlot:
        slot = self._scheduler.get_slot(slot_id)
        if not user.is_admin and slot.user_id != user.name:
            raise PermissionDeniedError("Only the owner can cancel this slot")
        now = self._clock.now()
        cancelled = self._scheduler.cancel(slot_id, now)
        self._alerts.publish(user.ref, "Slot cancelled successfully", NotificationLevel.NORMAL, now)
        return cancelled

    def slots_for(self, user: UserProfile) -> list[LaundrySlot]:
        if user.is_admin:
            return self._scheduler.list_active()
        return self._scheduler.upcoming_for_user(user.name, self._clock.now())

    def residence_slots(self, residence: str, machine_id: Optional[int] = None) -> list[LaundrySlot]:
        return self._scheduler.list_active(residence=residence, machine_id=machine_id)

    # ------------------------------------------------------------------
    # Feedback and notifications
    # ------------------------------------------------------------------
    def submit_feedback(
        self,
        user: UserProfile,
        machine_id: int,
        rating: int,
        condition: MachineCondition,
        issues: Iterable[str] = (),
        comments: str = "",
    ) -> MachineFeedback:
        self._require_student(user)
        machine = self._registry.get_machine(user.residence, machine_id)
        now = self._clock.now()
        feedback = self._feedback.submit_feedback(
            machine_id,
            machine.type,
            user.ref,
            rating,
            condition,
            now,
            issues=issues,
            comments=comments,
        )
        self._alerts.publish(user.ref, "Thank you for your feedback!", NotificationLevel.NORMAL, now)
        return feedback

    def list_feedback(self, user: UserProfile, unresolved_only: bool = False) -> list[MachineFeedback]:
        residence = None if user.is_admin else user.residence
        return self._feedback.list_feedback(residence=residence, unresolved_only=unresolved_only)

    def resolve_feedback(self, feedback_id: str) -> MachineFeedback:
        return self._feedback.resolve_feedback(feedback_id)

    def notifications_for(self, user: UserProfile) -> list[UserNotification]:
        return self._notifications.list_for(user.name)

    def unread_notifications(self, user: UserProfile) -> int:
        return self._notifications.unread_count(user.name)

    def mark_notification_read(self, user: UserProfile, notification_id: str) -> UserNotification:
        notification = self._notifications.get(notification_id)
        if notification.user_id != user.name:
            raise PermissionDeniedError("Notification belongs to another user")
        return self._notifications.mark_read(notification_id)

    def alerts_for(self, user: UserProfile) -> list[Alert]:
        return self._alerts.active_for(user.ref, self._clock.now())

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------
    def chat(self, user: UserProfile, question: str) -> str:
        if user.is_admin:
            return ADMIN_CHAT_REPLY
        machines = self._registry.list_machines(user.residence)
        try:
            return self._predictor.chat_reply(question, machines)
        except Exception:
            logger.exception("Chat collaborator failed | user=%s", user.name)
            return self._predictor.fallback_chat_reply(question, machines)

    def machines_for(self, residence: str) -> ResidenceUsage:
        return self._registry.residence_usage(residence, self._clock.now())

    def overview(self) -> list[ResidenceUsage]:
        now = self._clock.now()
        return [self._registry.residence_usage(residence, now) for residence in self._registry.residences()]

    def leaderboard(self) -> list[LeaderboardEntry]:
        return self._ledger.leaderboard()

    def residence_stats(self, residence: str) -> ResidenceStats:
        if residence not in self._registry.residences():
            raise ResidenceNotFoundError(f"residence '{residence}' not found")
        return self._ledger.residence_stats(residence)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _predict(self, user: UserProfile, duration_minutes: int) -> Optional[DelayPrediction]:
        try:
            return self._predictor.predict_delay(list(user.delay_history), duration_minutes)
        except Exception:
            logger.exception("Delay prediction failed; starting with no predicted delay | user=%s", user.name)
            return None

    def _allowed_durations(self, machine: Machine) -> tuple[int, ...]:
        if machine.type is MachineType.WASHER:
            return self._settings.washer_durations_minutes
        return self._settings.dryer_durations_minutes

    @staticmethod
    def _refuse_admin(user: UserProfile) -> None:
        if user.is_admin:
            raise InvalidTransitionError(ADMIN_CANNOT_OPERATE, "Administrators cannot operate machines")

    @staticmethod
    def _require_student(user: UserProfile) -> None:
        if user.is_admin:
            raise PermissionDeniedError("Administrators cannot use machines")
