"""Static badge catalog and the predicates that unlock each badge."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from aura.domain.models import UserProfile


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    icon: str
    rarity: str


def _early_collections(user: UserProfile) -> int:
    return sum(1 for delay in user.delay_history if delay < 0)


def _efficiency(user: UserProfile) -> bool:
    if user.total_cycles <= 0:
        return False
    return user.on_time_collections / user.total_cycles >= 0.95


BADGE_CATALOG: tuple[BadgeDefinition, ...] = (
    BadgeDefinition("first_cycle", "First Steps", "Completed your first laundry cycle", "🌱", "common"),
    BadgeDefinition("on_time_5", "Punctual", "Collected laundry on time 5 times", "⏰", "common"),
    BadgeDefinition("streak_7", "Consistent", "7-day collection streak", "🔥", "rare"),
    BadgeDefinition("streak_30", "Dedicated", "30-day collection streak", "💎", "epic"),
    BadgeDefinition("perfect_week", "Perfectionist", "Perfect on-time collection for a week", "⭐", "rare"),
    BadgeDefinition("early_bird", "Early Bird", "Collected laundry early 10 times", "🐦", "rare"),
    BadgeDefinition("laundry_master", "Laundry Master", "100 cycles completed", "👑", "legendary"),
    BadgeDefinition("efficiency_expert", "Efficiency Expert", "95%+ on-time collection rate", "🎯", "epic"),
)

BADGE_PREDICATES: dict[str, Callable[[UserProfile], bool]] = {
    "first_cycle": lambda user: user.total_cycles >= 1,
    "on_time_5": lambda user: user.on_time_collections >= 5,
    "streak_7": lambda user: user.streak >= 7,
    "streak_30": lambda user: user.streak >= 30,
    "perfect_week": lambda user: user.on_time_collections >= 7 and user.total_cycles >= 7,
    "early_bird": lambda user: _early_collections(user) >= 10,
    "laundry_master": lambda user: user.total_cycles >= 100,
    "efficiency_expert": _efficiency,
}


def eligible_badges(user: UserProfile) -> list[BadgeDefinition]:
    """Return catalog entries the user qualifies for but does not own yet."""
    owned = user.badge_ids()
    return [
        definition
        for definition in BADGE_CATALOG
        if definition.id not in owned and BADGE_PREDICATES[definition.id](user)
    ]
