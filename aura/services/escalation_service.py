"""Deadline escalation: almost-done, urgent, final and idle-too-long alerts.

Evaluation is a pure function of ``(machine, now)``. The engine runs it
once per machine per tick for every residence, persists the resulting
state, and hands events to the alert feed. Delivery filtering per
viewer happens afterwards, so state never depends on who is watching.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from aura.domain.constraints import EngineConfig, validate_engine_config
from aura.domain.models import Machine, MachineStatus, NotificationLevel, UserRef
from aura.services.machine_registry import MachineRegistryService, enter_idle
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

AUTO_DISMISS_SECONDS: dict[NotificationLevel, int] = {
    NotificationLevel.NORMAL: 5,
    NotificationLevel.URGENT: 8,
    NotificationLevel.FINAL: 10,
}

ALMOST_DONE = "almost_done"
URGENT = "urgent"
FINAL = "final"
IDLE_TOO_LONG = "idle_too_long"


@dataclass(frozen=True)
class EscalationEvent:
    residence: str
    machine_id: int
    recipient: UserRef
    level: NotificationLevel
    kind: str
    message: str
    occurred_at: datetime


@dataclass(frozen=True)
class EscalationOutcome:
    machine: Machine
    event: Optional[EscalationEvent] = None

    @property
    def changed(self) -> bool:
        return self.event is not None


@dataclass(frozen=True)
class EscalationWindows:
    almost_done: timedelta
    urgent: timedelta
    idle_too_long: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> "EscalationWindows":
        return cls(
            almost_done=timedelta(minutes=settings.almost_done_minutes),
            urgent=timedelta(minutes=settings.urgent_minutes),
            idle_too_long=timedelta(minutes=settings.idle_too_long_minutes),
        )


def _minutes(window: timedelta) -> int:
    return int(window.total_seconds() // 60)


def _event(machine: Machine, level: NotificationLevel, kind: str, message: str, now: datetime) -> EscalationEvent:
    return EscalationEvent(
        residence=machine.residence,
        machine_id=machine.id,
        recipient=machine.occupant,  # type: ignore[arg-type]
        level=level,
        kind=kind,
        message=message,
        occurred_at=now,
    )


def evaluate_machine(machine: Machine, now: datetime, windows: EscalationWindows) -> EscalationOutcome:
    """Advance a machine at most one escalation step; first match wins."""
    if machine.cycle_end_time is None or machine.occupant is None:
        return EscalationOutcome(machine=machine)

    end = machine.cycle_end_time
    if machine.status is MachineStatus.IDLE:
        if machine.notification_level is not NotificationLevel.URGENT and now - end > windows.idle_too_long:
            updated = replace(machine, notification_level=NotificationLevel.URGENT)
            message = f"Your laundry in {machine.label} has been ready for {_minutes(windows.idle_too_long)}+ minutes!"
            return EscalationOutcome(
                machine=updated,
                event=_event(updated, NotificationLevel.URGENT, IDLE_TOO_LONG, message, now),
            )
        return EscalationOutcome(machine=machine)

    if machine.status is not MachineStatus.BUSY:
        return EscalationOutcome(machine=machine)

    if now >= end:
        updated = enter_idle(machine, now)
        message = f"FINAL ALERT: Your laundry in {machine.label} is done!"
        return EscalationOutcome(
            machine=updated,
            event=_event(updated, NotificationLevel.FINAL, FINAL, message, now),
        )

    remaining = end - now
    if remaining < windows.urgent and machine.notification_level is NotificationLevel.NORMAL:
        updated = replace(machine, notification_level=NotificationLevel.URGENT)
        message = f"URGENT: {machine.label} finishing in {_minutes(windows.urgent)} minutes!"
        return EscalationOutcome(
            machine=updated,
            event=_event(updated, NotificationLevel.URGENT, URGENT, message, now),
        )

    if remaining < windows.almost_done and not machine.notified_almost_done:
        updated = replace(machine, notified_almost_done=True)
        message = f"{machine.label} is almost done!"
        return EscalationOutcome(
            machine=updated,
            event=_event(updated, NotificationLevel.NORMAL, ALMOST_DONE, message, now),
        )

    return EscalationOutcome(machine=machine)


def deliverable_to(event: EscalationEvent, viewer: Optional[UserRef]) -> bool:
    return viewer is not None and event.recipient == viewer


def evaluate_for_viewer(
    machine: Machine,
    now: datetime,
    viewer: Optional[UserRef],
    windows: EscalationWindows,
) -> tuple[Machine, Optional[EscalationEvent]]:
    """Per-viewer form: the transition always happens, the event only for the occupant."""
    outcome = evaluate_machine(machine, now, windows)
    if outcome.event is not None and deliverable_to(outcome.event, viewer):
        return outcome.machine, outcome.event
    return outcome.machine, None


class EscalationEngine:
    """Central per-tick evaluation across every residence."""

    def __init__(
        self,
        registry: MachineRegistryService,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        validate_engine_config(
            EngineConfig(
                tick_interval_seconds=self._settings.tick_interval_seconds,
                almost_done_minutes=self._settings.almost_done_minutes,
                urgent_minutes=self._settings.urgent_minutes,
                idle_too_long_minutes=self._settings.idle_too_long_minutes,
                on_time_grace_minutes=self._settings.on_time_grace_minutes,
                queue_minutes_per_turn=self._settings.queue_minutes_per_turn,
                reminder_offsets_minutes=self._settings.reminder_offsets_minutes,
            )
        )
        self._registry = registry
        self._windows = EscalationWindows.from_settings(self._settings)

    def evaluate(self, residence: str, machine_id: int, now: datetime) -> Optional[EscalationEvent]:
        """Evaluate one machine under its residence lock and persist the result."""
        with self._registry.lock_for(residence):
            machine = self._registry.get_machine(residence, machine_id)
            outcome = evaluate_machine(machine, now, self._windows)
            if outcome.changed:
                self._registry.save(outcome.machine)
        if outcome.event is not None:
            self._log_event(outcome.event)
        return outcome.event

    def tick(self, now: datetime) -> list[EscalationEvent]:
        events: list[EscalationEvent] = []
        for residence in self._registry.residences():
            with self._registry.lock_for(residence):
                for machine in self._registry.list_machines(residence):
                    outcome = evaluate_machine(machine, now, self._windows)
                    if outcome.changed:
                        self._registry.save(outcome.machine)
                    if outcome.event is not None:
                        events.append(outcome.event)
        for event in events:
            self._log_event(event)
        return events

    @staticmethod
    def _log_event(event: EscalationEvent) -> None:
        logger.info(
            "Escalation | residence=%s | machine=%s | kind=%s | level=%s | occupant=%s",
            event.residence,
            event.machine_id,
            event.kind,
            event.level.value,
            event.recipient.name,
        )
