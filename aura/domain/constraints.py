"""Domain-level validation rules for escalation and scheduling."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class EngineConfig:
    tick_interval_seconds: float
    almost_done_minutes: int
    urgent_minutes: int
    idle_too_long_minutes: int
    on_time_grace_minutes: int
    queue_minutes_per_turn: int
    reminder_offsets_minutes: tuple[int, ...]


def validate_engine_config(config: EngineConfig) -> None:
    if config.tick_interval_seconds <= 0:
        raise ValueError("tick_interval_seconds must be > 0")
    if config.urgent_minutes <= 0:
        raise ValueError("urgent_minutes must be > 0")
    if config.almost_done_minutes <= config.urgent_minutes:
        raise ValueError("almost_done_minutes must be greater than urgent_minutes")
    if config.idle_too_long_minutes <= 0:
        raise ValueError("idle_too_long_minutes must be > 0")
    if config.on_time_grace_minutes < 0:
        raise ValueError("on_time_grace_minutes must be >= 0")
    if config.queue_minutes_per_turn <= 0:
        raise ValueError("queue_minutes_per_turn must be > 0")
    if any(offset <= 0 for offset in config.reminder_offsets_minutes):
        raise ValueError("reminder_offsets_minutes values must be > 0")


def validate_cycle_duration(duration_minutes: int) -> None:
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be > 0")


def validate_slot_window(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise ValueError("end_time must be later than start_time")


def validate_rating(rating: int) -> None:
    if not 1 <= rating <= 5:
        raise ValueError("rating must be an integer between 1 and 5")


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open overlap test: touching endpoints do not conflict."""
    starts_during = start_b <= start_a < end_b
    ends_during = start_b < end_a <= end_b
    contains = start_a <= start_b and end_a >= end_b
    return starts_during or ends_during or contains
