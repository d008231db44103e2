from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from aura.domain.models import Machine, MachineStatus, MachineType, NotificationLevel, UserRef
from aura.repository.state_repository import StateRepository
from aura.services.alert_service import AlertFeedService
from aura.services.clock import ManualClock
from aura.services.escalation_service import (
    ALMOST_DONE,
    FINAL,
    IDLE_TOO_LONG,
    URGENT,
    EscalationEngine,
    EscalationWindows,
    evaluate_for_viewer,
    evaluate_machine,
)
from aura.services.machine_registry import MachineRegistryService, check_occupancy_invariant
from aura.utils.config import get_settings


RESIDENCE = "Dagbreek"
ALICE = UserRef(name="alice", residence=RESIDENCE)
BOB = UserRef(name="bob", residence=RESIDENCE)
START = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
WINDOWS = EscalationWindows(
    almost_done=timedelta(minutes=5),
    urgent=timedelta(minutes=2),
    idle_too_long=timedelta(minutes=30),
)


def _busy_machine(**overrides) -> Machine:
    defaults = {
        "id": 1,
        "type": MachineType.WASHER,
        "residence": RESIDENCE,
        "status": MachineStatus.BUSY,
        "occupant": ALICE,
        "cycle_end_time": START + timedelta(minutes=30),
        "predicted_end_time": START + timedelta(minutes=34),
    }
    defaults.update(overrides)
    return Machine(**defaults)


def _build_engine():
    get_settings.cache_clear()
    settings = replace(get_settings(), residences=(RESIDENCE, "Irene"), ai_enabled=False)
    repository = StateRepository(settings)
    repository.initialize_machines()
    registry = MachineRegistryService(repository=repository, settings=settings)
    return EscalationEngine(registry, settings=settings), registry, repository, settings


# --- pure evaluation ---

def _assert_occupancy(registry: MachineRegistryService) -> None:
    for residence in registry.residences():
        assert all(check_occupancy_invariant(machine) for machine in registry.list_machines(residence))

def test_free_machine_produces_no_event():
    machine = Machine(id=1, type=MachineType.WASHER, residence=RESIDENCE)

    outcome = evaluate_machine(machine, START, WINDOWS)

    assert outcome.machine == machine
    assert outcome.event is None


def test_far_from_deadline_produces_no_event():
    outcome = evaluate_machine(_busy_machine(), START + timedelta(minutes=10), WINDOWS)

    assert outcome.event is None


def test_almost_done_fires_once():
    now = START + timedelta(minutes=26)

    first = evaluate_machine(_busy_machine(), now, WINDOWS)
    second = evaluate_machine(first.machine, now + timedelta(seconds=30), WINDOWS)

    assert first.event is not None
    assert first.event.kind == ALMOST_DONE
    assert first.event.level is NotificationLevel.NORMAL
    assert first.event.message == "Washer 1 is almost done!"
    assert first.machine.notified_almost_done is True
    assert second.event is None


def test_urgent_wins_over_almost_done_when_both_apply():
    outcome = evaluate_machine(_busy_machine(), START + timedelta(minutes=29), WINDOWS)

    assert outcome.event is not None
    assert outcome.event.kind == URGENT
    assert outcome.event.message == "URGENT: Washer 1 finishing in 2 minutes!"
    assert outcome.machine.notification_level is NotificationLevel.URGENT
    assert outcome.machine.notified_almost_done is False


def test_final_wins_over_almost_done_on_a_single_late_tick():
    outcome = evaluate_machine(_busy_machine(), START + timedelta(minutes=31), WINDOWS)

    assert outcome.event is not None
    assert outcome.event.kind == FINAL
    assert outcome.event.level is NotificationLevel.FINAL
    assert outcome.event.message == "FINAL ALERT: Your laundry in Washer 1 is done!"
    assert outcome.machine.status is MachineStatus.IDLE
    assert outcome.machine.notification_level is NotificationLevel.FINAL
    assert outcome.machine.total_usage_count == 1
    assert check_occupancy_invariant(outcome.machine)


def test_final_is_idempotent():
    first = evaluate_machine(_busy_machine(), START + timedelta(minutes=30), WINDOWS)
    again = evaluate_machine(first.machine, START + timedelta(minutes=31), WINDOWS)

    assert again.event is None
    assert again.machine == first.machine


def test_idle_too_long_escalates_once():
    idle = evaluate_machine(_busy_machine(), START + timedelta(minutes=30), WINDOWS).machine

    at_threshold = evaluate_machine(idle, START + timedelta(minutes=60), WINDOWS)
    beyond = evaluate_machine(idle, START + timedelta(minutes=60, seconds=1), WINDOWS)
    repeat = evaluate_machine(beyond.machine, START + timedelta(minutes=90), WINDOWS)

    assert at_threshold.event is None
    assert beyond.event is not None
    assert beyond.event.kind == IDLE_TOO_LONG
    assert beyond.event.message == "Your laundry in Washer 1 has been ready for 30+ minutes!"
    assert beyond.machine.notification_level is NotificationLevel.URGENT
    assert check_occupancy_invariant(beyond.machine)
    assert beyond.machine.status is MachineStatus.IDLE
    assert repeat.event is None


def test_transition_happens_for_any_viewer_but_event_only_for_occupant():
    machine = _busy_machine()
    now = START + timedelta(minutes=30)

    for_bob, bob_event = evaluate_for_viewer(machine, now, BOB, WINDOWS)
    for_alice, alice_event = evaluate_for_viewer(machine, now, ALICE, WINDOWS)
    for_nobody, nobody_event = evaluate_for_viewer(machine, now, None, WINDOWS)

    assert for_bob.status is MachineStatus.IDLE
    assert for_nobody.status is MachineStatus.IDLE
    assert bob_event is None
    assert nobody_event is None
    assert alice_event is not None
    assert alice_event.recipient == ALICE
    assert for_alice == for_bob


def test_same_name_in_another_residence_is_not_the_occupant():
    impostor = UserRef(name="alice", residence="Irene")

    _, event = evaluate_for_viewer(_busy_machine(), START + timedelta(minutes=30), impostor, WINDOWS)

    assert event is None


# --- engine over the registry ---

def test_engine_tick_persists_state_and_returns_events():
    engine, registry, _, _ = _build_engine()
    clock = ManualClock(START)
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())
    registry.start_cycle("Irene", 2, UserRef("carol", "Irene"), 45, 0, clock.now())

    clock.advance(minutes=26)
    events = engine.tick(clock.now())
    assert [(event.residence, event.kind) for event in events] == [(RESIDENCE, ALMOST_DONE)]
    _assert_occupancy(registry)

    clock.advance(minutes=4)
    events = engine.tick(clock.now())
    assert [(event.machine_id, event.kind) for event in events] == [(1, FINAL)]
    assert registry.get_machine(RESIDENCE, 1).status is MachineStatus.IDLE
    assert registry.get_machine("Irene", 2).status is MachineStatus.BUSY
    _assert_occupancy(registry)

    assert engine.tick(clock.now()) == []


def test_engine_evaluate_single_machine():
    engine, registry, _, _ = _build_engine()
    clock = ManualClock(START)
    registry.start_cycle(RESIDENCE, 4, ALICE, 30, 0, clock.now())
    clock.advance(minutes=35)

    event = engine.evaluate(RESIDENCE, 4, clock.now())

    assert event is not None
    assert event.kind == FINAL
    assert registry.get_machine(RESIDENCE, 4).status is MachineStatus.IDLE
    assert engine.evaluate(RESIDENCE, 4, clock.now()) is None


# --- alert delivery ---

def test_alerts_auto_dismiss_by_level():
    engine, registry, repository, settings = _build_engine()
    alerts = AlertFeedService(repository=repository, settings=settings)
    clock = ManualClock(START)
    registry.start_cycle(RESIDENCE, 1, ALICE, 30, 0, clock.now())
    clock.advance(minutes=30)

    for event in engine.tick(clock.now()):
        alerts.publish_event(event)

    active = alerts.active_for(ALICE, clock.now())
    assert len(active) == 1
    assert active[0].level is NotificationLevel.FINAL
    assert active[0].kind == "urgent"
    assert active[0].machine_id == 1
    assert alerts.active_for(BOB, clock.now()) == []
    assert alerts.active_for(ALICE, clock.now() + timedelta(seconds=9)) == active
    assert alerts.active_for(ALICE, clock.now() + timedelta(seconds=10)) == []


def test_normal_alert_dismisses_after_five_seconds():
    _, _, repository, settings = _build_engine()
    alerts = AlertFeedService(repository=repository, settings=settings)

    alerts.publish(ALICE, "Washer 1 is almost done!", NotificationLevel.NORMAL, START)

    assert len(alerts.active_for(ALICE, START + timedelta(seconds=4))) == 1
    assert alerts.active_for(ALICE, START + timedelta(seconds=5)) == []


def test_old_alerts_are_pruned():
    _, _, repository, settings = _build_engine()
    alerts = AlertFeedService(repository=repository, settings=settings)
    alerts.publish(ALICE, "old", NotificationLevel.NORMAL, START)
    alerts.publish(ALICE, "new", NotificationLevel.NORMAL, START + timedelta(minutes=50))

    removed = alerts.prune(START + timedelta(minutes=61))

    assert removed == 1
    assert [alert.message for alert in repository.list_alerts()] == ["new"]
