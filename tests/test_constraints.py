"""Tests for engine configuration and scheduling validation rules.

Covers every branch in validate_engine_config() plus the slot, rating and
overlap helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from aura.domain.constraints import (
    EngineConfig,
    intervals_overlap,
    validate_cycle_duration,
    validate_engine_config,
    validate_rating,
    validate_slot_window,
)


def valid_config(**overrides) -> EngineConfig:
    """Return a valid baseline EngineConfig, optionally overriding fields."""
    defaults = {
        "tick_interval_seconds": 1.0,
        "almost_done_minutes": 5,
        "urgent_minutes": 2,
        "idle_too_long_minutes": 30,
        "on_time_grace_minutes": 5,
        "queue_minutes_per_turn": 60,
        "reminder_offsets_minutes": (1440, 60, 15),
    }
    defaults.update(overrides)
    return EngineConfig(**defaults)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


# --- Baseline pass ---

def test_valid_config_passes() -> None:
    """A fully valid config must not raise."""
    validate_engine_config(valid_config())


# --- tick_interval_seconds ---

def test_tick_interval_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(tick_interval_seconds=0))


# --- escalation windows ---

def test_urgent_window_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(urgent_minutes=0))


def test_almost_done_not_wider_than_urgent_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(almost_done_minutes=2, urgent_minutes=2))


def test_idle_threshold_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(idle_too_long_minutes=0))


# --- grace, queue and reminders ---

def test_negative_grace_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(on_time_grace_minutes=-1))


def test_zero_grace_is_allowed() -> None:
    validate_engine_config(valid_config(on_time_grace_minutes=0))


def test_queue_minutes_per_turn_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(queue_minutes_per_turn=0))


def test_non_positive_reminder_offset_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(reminder_offsets_minutes=(60, 0)))


# --- single-value validators ---

def test_cycle_duration_must_be_positive() -> None:
    validate_cycle_duration(30)
    with pytest.raises(ValueError):
        validate_cycle_duration(0)


def test_slot_window_requires_end_after_start() -> None:
    validate_slot_window(at(10), at(11))
    with pytest.raises(ValueError):
        validate_slot_window(at(11), at(11))
    with pytest.raises(ValueError):
        validate_slot_window(at(12), at(11))


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_rating_outside_one_to_five_raises(rating: int) -> None:
    with pytest.raises(ValueError):
        validate_rating(rating)


# --- interval overlap ---

def test_overlap_detects_partial_and_containing_intervals() -> None:
    assert intervals_overlap(at(10), at(11), at(10, 30), at(11, 30))
    assert intervals_overlap(at(10, 30), at(11, 30), at(10), at(11))
    assert intervals_overlap(at(9), at(12), at(10), at(11))
    assert intervals_overlap(at(10, 15), at(10, 45), at(10), at(11))


def test_touching_endpoints_do_not_overlap() -> None:
    assert not intervals_overlap(at(11), at(12), at(10), at(11))
    assert not intervals_overlap(at(9), at(10), at(10), at(11))
