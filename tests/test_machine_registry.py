from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from aura.domain.models import MachineStatus, MachineType, NotificationLevel, UserRef
from aura.repository.state_repository import StateRepository
from aura.services.clock import ManualClock
from aura.services.machine_registry import (
    ADMIN_CANNOT_OPERATE,
    NOT_FREE,
    NOT_IDLE_OR_NOT_OWNER,
    InvalidTransitionError,
    MachineNotFoundError,
    MachineRegistryService,
    ResidenceNotFoundError,
    check_occupancy_invariant,
)
from aura.utils.config import get_settings


RESIDENCE = "Dagbreek"
ALICE = UserRef(name="alice", residence=RESIDENCE)
BOB = UserRef(name="bob", residence=RESIDENCE)


def _build_registry():
    get_settings.cache_clear()
    settings = replace(get_settings(), residences=(RESIDENCE, "Irene"), ai_enabled=False)
    repository = StateRepository(settings)
    repository.initialize_machines()
    return MachineRegistryService(repository=repository, settings=settings), repository


def test_machines_are_numbered_washers_then_dryers():
    registry, repository = _build_registry()

    machines = registry.list_machines(RESIDENCE)

    assert [machine.id for machine in machines] == list(range(1, 9))
    assert [machine.type for machine in machines[:5]] == [MachineType.WASHER] * 5
    assert [machine.type for machine in machines[5:]] == [MachineType.DRYER] * 3
    assert all(machine.status is MachineStatus.FREE for machine in machines)
    assert all(check_occupancy_invariant(machine) for machine in machines)


def test_initialize_machines_is_idempotent():
    registry, repository = _build_registry()
    clock = ManualClock()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())

    repository.initialize_machines()

    assert registry.get_machine(RESIDENCE, 1).status is MachineStatus.BUSY


def test_start_cycle_sets_deadline_and_prediction():
    registry, _ = _build_registry()
    clock = ManualClock()
    now = clock.now()

    machine = registry.start_cycle(RESIDENCE, 2, ALICE, 45, 4, now)

    assert machine.status is MachineStatus.BUSY
    assert machine.occupant == ALICE
    assert machine.cycle_end_time == now + timedelta(minutes=45)
    assert machine.predicted_end_time == now + timedelta(minutes=49)
    assert machine.notification_level is NotificationLevel.NORMAL
    assert machine.notified_almost_done is False
    assert check_occupancy_invariant(machine)


def test_start_cycle_on_busy_machine_is_refused():
    registry, _ = _build_registry()
    now = ManualClock().now()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, now)

    with pytest.raises(InvalidTransitionError) as exc_info:
        registry.start_cycle(RESIDENCE, 1, BOB, 30, 0, now)

    assert exc_info.value.reason == NOT_FREE
    assert registry.get_machine(RESIDENCE, 1).occupant == ALICE


def test_admin_cannot_start_or_collect():
    registry, _ = _build_registry()
    now = ManualClock().now()

    with pytest.raises(InvalidTransitionError) as start_error:
        registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, now, is_admin=True)
    with pytest.raises(InvalidTransitionError) as collect_error:
        registry.collect(RESIDENCE, 1, ALICE, now, is_admin=True)

    assert start_error.value.reason == ADMIN_CANNOT_OPERATE
    assert collect_error.value.reason == ADMIN_CANNOT_OPERATE


def test_unknown_machine_and_residence_raise_not_found():
    registry, _ = _build_registry()

    with pytest.raises(MachineNotFoundError):
        registry.get_machine(RESIDENCE, 99)
    with pytest.raises(ResidenceNotFoundError):
        registry.get_machine("Nowhere", 1)


def test_tick_deadline_transitions_exactly_once():
    registry, _ = _build_registry()
    clock = ManualClock()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())

    clock.advance(minutes=29, seconds=59)
    assert registry.tick_deadline(RESIDENCE, 1, clock.now()) is None
    assert registry.get_machine(RESIDENCE, 1).status is MachineStatus.BUSY

    clock.advance(seconds=1)
    idle = registry.tick_deadline(RESIDENCE, 1, clock.now())
    assert idle is not None
    assert idle.status is MachineStatus.IDLE
    assert idle.notification_level is NotificationLevel.FINAL
    assert idle.total_usage_count == 1
    assert idle.last_used_at == clock.now()

    clock.advance(minutes=5)
    assert registry.tick_deadline(RESIDENCE, 1, clock.now()) is None
    assert registry.get_machine(RESIDENCE, 1).total_usage_count == 1


def test_collect_requires_idle_machine_and_owner():
    registry, _ = _build_registry()
    clock = ManualClock()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())

    with pytest.raises(InvalidTransitionError) as busy_error:
        registry.collect(RESIDENCE, 1, ALICE, clock.now())
    assert busy_error.value.reason == NOT_IDLE_OR_NOT_OWNER

    clock.advance(minutes=30)
    registry.tick_deadline(RESIDENCE, 1, clock.now())
    with pytest.raises(InvalidTransitionError):
        registry.collect(RESIDENCE, 1, BOB, clock.now())
    with pytest.raises(InvalidTransitionError):
        registry.collect(RESIDENCE, 1, UserRef(name="alice", residence="Irene"), clock.now())


def test_collect_computes_rounded_delay_and_frees_machine():
    registry, _ = _build_registry()
    clock = ManualClock()
    registry.start_cycle(RESIDENCE, 3, ALICE, 30, 2, clock.now())
    clock.advance(minutes=30)
    registry.tick_deadline(RESIDENCE, 3, clock.now())

    clock.advance(minutes=3, seconds=29)
    result = registry.collect(RESIDENCE, 3, ALICE, clock.now())

    assert result.delay_minutes == 3
    released = registry.get_machine(RESIDENCE, 3)
    assert released.status is MachineStatus.FREE
    assert released.occupant is None
    assert released.cycle_end_time is None
    assert released.predicted_end_time is None
    assert released.notification_level is NotificationLevel.NORMAL
    assert released.notified_almost_done is False
    assert released.total_usage_count == 1
    assert check_occupancy_invariant(released)


def test_residences_are_isolated():
    registry, _ = _build_registry()
    now = ManualClock().now()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, now)

    assert registry.get_machine("Irene", 1).status is MachineStatus.FREE


def test_residence_usage_counts_and_waits():
    registry, _ = _build_registry()
    clock = ManualClock()
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())
    registry.start_cycle(RESIDENCE, 2, BOB, 60, 0, clock.now())
    registry.start_cycle(RESIDENCE, 6, UserRef("carol", RESIDENCE), 40, 0, clock.now())
    clock.advance(minutes=30)
    registry.tick_deadline(RESIDENCE, 1, clock.now())
    clock.advance(minutes=10)
    registry.tick_deadline(RESIDENCE, 6, clock.now())
    clock.advance(minutes=4)

    usage = registry.residence_usage(RESIDENCE, clock.now())

    assert usage.counts["Washer"] == {"free": 3, "busy": 1, "idle": 1, "total": 5}
    assert usage.counts["Dryer"] == {"free": 2, "busy": 0, "idle": 1, "total": 3}
    assert usage.utilization_rate == 12.5
    assert usage.average_wait_minutes == 9.0
    snapshot = {item.machine.id: item for item in usage.machines}
    assert snapshot[2].minutes_remaining == 16
    assert snapshot[1].minutes_idle == 14
    assert snapshot[6].minutes_idle == 4
