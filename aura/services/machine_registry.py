"""Machine lifecycle: Free -> Busy -> Idle -> Free."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

import numpy as np

from aura.domain.constraints import validate_cycle_duration
from aura.domain.models import (
    Machine,
    MachineStatus,
    MachineType,
    NotificationLevel,
    UserRef,
)
from aura.repository.state_repository import StateRepository, UnknownResidenceError
from aura.services.clock import round_minutes
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

NOT_FREE = "not_free"
ADMIN_CANNOT_OPERATE = "admin_cannot_operate"
NOT_IDLE_OR_NOT_OWNER = "not_idle_or_not_owner"


class MachineRegistryError(Exception):
    """Base exception for machine registry failures."""


class MachineNotFoundError(MachineRegistryError):
    """Raised when a machine id does not exist in the residence."""


class ResidenceNotFoundError(MachineRegistryError):
    """Raised when a residence group is unknown."""


class InvalidTransitionError(MachineRegistryError):
    """Raised when a command does not fit the machine's current state."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class CollectionResult:
    machine: Machine
    delay_minutes: int
    released: Machine


@dataclass(frozen=True)
class MachineSnapshot:
    machine: Machine
    minutes_remaining: Optional[int]
    minutes_idle: Optional[int]


@dataclass(frozen=True)
class ResidenceUsage:
    residence: str
    counts: dict[str, dict[str, int]]
    utilization_rate: float
    average_wait_minutes: float
    machines: list[MachineSnapshot]


def enter_idle(machine: Machine, now: datetime) -> Machine:
    """Deadline transition; the only path from Busy to Idle."""
    return replace(
        machine,
        status=MachineStatus.IDLE,
        last_used_at=now,
        total_usage_count=machine.total_usage_count + 1,
        notification_level=NotificationLevel.FINAL,
    )


def release(machine: Machine) -> Machine:
    return replace(
        machine,
        status=MachineStatus.FREE,
        occupant=None,
        cycle_end_time=None,
        predicted_end_time=None,
        notified_almost_done=False,
        notification_level=NotificationLevel.NORMAL,
    )


def check_occupancy_invariant(machine: Machine) -> bool:
    if machine.status is MachineStatus.FREE:
        return machine.occupant is None and machine.cycle_end_time is None
    return machine.occupant is not None and machine.cycle_end_time is not None


class MachineRegistryService:
    """Owns machine state transitions for every residence group.

    Callers that combine several steps (tick evaluation followed by a
    collect) hold ``lock_for(residence)`` around the whole sequence.
    """

    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)

    def lock_for(self, residence: str):
        try:
            return self._repository.residence_lock(residence)
        except UnknownResidenceError as exc:
            raise ResidenceNotFoundError(f"residence '{residence}' not found") from exc

    def residences(self) -> list[str]:
        return self._repository.list_residences()

    def get_machine(self, residence: str, machine_id: int) -> Machine:
        try:
            machine = self._repository.get_machine(residence, machine_id)
        except UnknownResidenceError as exc:
            raise ResidenceNotFoundError(f"residence '{residence}' not found") from exc
        if machine is None:
            raise MachineNotFoundError(
                f"machine {machine_id} not found in residence '{residence}'"
            )
        return machine

    def list_machines(self, residence: str) -> list[Machine]:
        try:
            return self._repository.list_machines(residence)
        except UnknownResidenceError as exc:
            raise ResidenceNotFoundError(f"residence '{residence}' not found") from exc

    def save(self, machine: Machine) -> None:
        self._repository.save_machine(machine)

    def start_cycle(
        self,
        residence: str,
        machine_id: int,
        occupant: UserRef,
        duration_minutes: int,
        predicted_delay_minutes: int,
        now: datetime,
        *,
        is_admin: bool = False,
    ) -> Machine:
        validate_cycle_duration(duration_minutes)
        if is_admin:
            raise InvalidTransitionError(
                ADMIN_CANNOT_OPERATE,
                "Administrators cannot operate machines",
            )
        with self.lock_for(residence):
            machine = self.get_machine(residence, machine_id)
            if machine.status is not MachineStatus.FREE:
                raise InvalidTransitionError(
                    NOT_FREE,
                    f"{machine.label} is {machine.status.value}, not Free",
                )
            cycle_end_time = now + timedelta(minutes=duration_minutes)
            started = replace(
                machine,
                status=MachineStatus.BUSY,
                occupant=occupant,
                cycle_end_time=cycle_end_time,
                predicted_end_time=cycle_end_time + timedelta(minutes=predicted_delay_minutes),
                notified_almost_done=False,
                notification_level=NotificationLevel.NORMAL,
            )
            self.save(started)

        logger.info(
            "Cycle started | residence=%s | machine=%s | occupant=%s | duration=%s | predicted_delay=%s",
            residence,
            machine_id,
            occupant.name,
            duration_minutes,
            predicted_delay_minutes,
        )
        return started

    def tick_deadline(self, residence: str, machine_id: int, now: datetime) -> Optional[Machine]:
        """Apply the Busy -> Idle transition if the deadline passed."""
        with self.lock_for(residence):
            machine = self.get_machine(residence, machine_id)
            if machine.status is not MachineStatus.BUSY or machine.cycle_end_time is None:
                return None
            if now < machine.cycle_end_time:
                return None
            idle = enter_idle(machine, now)
            self.save(idle)
        logger.info("Cycle finished | residence=%s | machine=%s", residence, machine_id)
        return idle

    def collect(
        self,
        residence: str,
        machine_id: int,
        collector: UserRef,
        now: datetime,
        *,
        is_admin: bool = False,
    ) -> CollectionResult:
        if is_admin:
            raise InvalidTransitionError(
                ADMIN_CANNOT_OPERATE,
                "Administrators cannot operate machines",
            )
        with self.lock_for(residence):
            machine = self.get_machine(residence, machine_id)
            if (
                machine.status is not MachineStatus.IDLE
                or machine.occupant != collector
                or machine.cycle_end_time is None
            ):
                raise InvalidTransitionError(
                    NOT_IDLE_OR_NOT_OWNER,
                    f"{machine.label} has no finished laundry for {collector.name}",
                )
            delay_minutes = round_minutes(now - machine.cycle_end_time)
            released = release(machine)
            self.save(released)

        logger.info(
            "Laundry collected | residence=%s | machine=%s | occupant=%s | delay=%s",
            residence,
            machine_id,
            collector.name,
            delay_minutes,
        )
        return CollectionResult(machine=machine, delay_minutes=delay_minutes, released=released)

    def residence_usage(self, residence: str, now: datetime) -> ResidenceUsage:
        machines = self.list_machines(residence)
        counts: dict[str, dict[str, int]] = {}
        for machine_type in MachineType:
            typed = [machine for machine in machines if machine.type is machine_type]
            counts[machine_type.value] = {
                "free": sum(1 for m in typed if m.status is MachineStatus.FREE),
                "busy": sum(1 for m in typed if m.status is MachineStatus.BUSY),
                "idle": sum(1 for m in typed if m.status is MachineStatus.IDLE),
                "total": len(typed),
            }

        snapshots: list[MachineSnapshot] = []
        idle_waits: list[int] = []
        for machine in machines:
            remaining: Optional[int] = None
            idle_minutes: Optional[int] = None
            if machine.status is MachineStatus.BUSY and machine.cycle_end_time is not None:
                remaining = max(0, round_minutes(machine.cycle_end_time - now))
            if machine.status is MachineStatus.IDLE and machine.cycle_end_time is not None:
                idle_minutes = max(0, round_minutes(now - machine.cycle_end_time))
                idle_waits.append(idle_minutes)
            snapshots.append(
                MachineSnapshot(machine=machine, minutes_remaining=remaining, minutes_idle=idle_minutes)
            )

        busy = sum(1 for machine in machines if machine.status is MachineStatus.BUSY)
        utilization = round(busy / len(machines) * 100.0, 1) if machines else 0.0
        average_wait = float(np.round(np.mean(idle_waits), 1)) if idle_waits else 0.0
        return ResidenceUsage(
            residence=residence,
            counts=counts,
            utilization_rate=utilization,
            average_wait_minutes=average_wait,
            machines=snapshots,
        )
