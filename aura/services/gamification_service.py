"""Points, streaks and badges derived from collection timeliness."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Optional

from aura.domain.badges import eligible_badges
from aura.domain.models import EarnedBadge, LeaderboardEntry, UserProfile, UserRole
from aura.repository.state_repository import StateRepository
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)

ON_TIME_COLLECTION = "on_time_collection"
EARLY_COLLECTION = "early_collection"
STREAK_BONUS = "streak_bonus"


class GamificationError(Exception):
    """Base exception for ledger failures."""


class UnknownUserError(GamificationError):
    """Raised when a user has never logged in."""


@dataclass(frozen=True)
class CollectionOutcome:
    on_time: bool
    points_awarded: int
    new_badges: list[EarnedBadge]


@dataclass(frozen=True)
class ResidenceStats:
    residence: str
    total_users: int
    total_cycles: int
    total_points: int
    average_on_time_rate: int
    top_users: list[LeaderboardEntry]


def _entry(user: UserProfile) -> LeaderboardEntry:
    return LeaderboardEntry(
        name=user.name,
        residence=user.residence,
        points=user.points,
        badges=len(user.badges),
        streak=user.streak,
        on_time_rate=user.on_time_rate,
    )


class GamificationLedger:
    """Single owner of every ``UserProfile`` mutation after login."""

    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or StateRepository(self._settings)
        self._lock = RLock()
        self._leaderboard: list[LeaderboardEntry] = []

    def register(self, name: str, residence: str, role: UserRole = UserRole.STUDENT) -> UserProfile:
        """Create the profile on first login; later logins reuse it."""
        with self._lock:
            user = self._repository.add_user(UserProfile(name=name, residence=residence, role=role))
            self._rebuild_leaderboard()
        return user

    def get_user(self, name: str) -> UserProfile:
        user = self._repository.get_user(name)
        if user is None:
            raise UnknownUserError(f"user '{name}' not found")
        return user

    def award_points(self, name: str, action: str, amount: int, now: datetime) -> int:
        with self._lock:
            user = self.get_user(name)
            awarded = self._apply_award(user, action, amount)
            self.check_badges(name, now)
            self._rebuild_leaderboard()
        return awarded

    def check_badges(self, name: str, now: datetime) -> list[EarnedBadge]:
        with self._lock:
            user = self.get_user(name)
            granted: list[EarnedBadge] = []
            for definition in eligible_badges(user):
                badge = EarnedBadge(
                    id=definition.id,
                    name=definition.name,
                    description=definition.description,
                    icon=definition.icon,
                    rarity=definition.rarity,
                    earned_at=now,
                )
                user.badges.append(badge)
                granted.append(badge)
            if granted:
                self._rebuild_leaderboard()
                logger.info(
                    "Badges granted | user=%s | badges=%s",
                    name,
                    ",".join(badge.id for badge in granted),
                )
            return granted

    def record_collection(self, name: str, delay_minutes: int, now: datetime) -> CollectionOutcome:
        """Fold one collection into the user's stats and return what it earned."""
        base = self._settings.collection_base_points
        with self._lock:
            user = self.get_user(name)
            on_time = delay_minutes <= self._settings.on_time_grace_minutes
            user.total_cycles += 1
            user.delay_history.append(delay_minutes)

            points = 0
            if on_time:
                user.on_time_collections += 1
                user.streak += 1
                points += self._apply_award(user, ON_TIME_COLLECTION, base)
            else:
                user.streak = 0

            if delay_minutes < 0:
                points += self._apply_award(user, EARLY_COLLECTION, abs(delay_minutes))
            elif delay_minutes == 0:
                points += self._apply_award(user, ON_TIME_COLLECTION, self._settings.exact_collection_points)

            new_badges = self.check_badges(name, now)
            self._rebuild_leaderboard()

        logger.info(
            "Collection recorded | user=%s | delay=%s | on_time=%s | points=%s | streak=%s",
            name,
            delay_minutes,
            on_time,
            points,
            user.streak,
        )
        return CollectionOutcome(on_time=on_time, points_awarded=points, new_badges=new_badges)

    def leaderboard(self) -> list[LeaderboardEntry]:
        with self._lock:
            return list(self._leaderboard)

    def residence_stats(self, residence: str) -> ResidenceStats:
        users = [user for user in self._repository.list_users() if user.residence == residence]
        if users:
            average_rate = sum(
                user.on_time_collections / max(user.total_cycles, 1) * 100.0 for user in users
            ) / len(users)
        else:
            average_rate = 0.0
        ranked = sorted(users, key=lambda user: user.points, reverse=True)
        return ResidenceStats(
            residence=residence,
            total_users=len(users),
            total_cycles=sum(user.total_cycles for user in users),
            total_points=sum(user.points for user in users),
            average_on_time_rate=int(average_rate + 0.5),
            top_users=[_entry(user) for user in ranked[:5]],
        )

    @staticmethod
    def _apply_award(user: UserProfile, action: str, amount: int) -> int:
        if action == ON_TIME_COLLECTION:
            awarded = amount * 2
        elif action == EARLY_COLLECTION:
            awarded = amount * 3
        elif action == STREAK_BONUS:
            awarded = amount * user.streak
        else:
            awarded = amount
        user.points = max(0, user.points + awarded)
        return awarded

    def _rebuild_leaderboard(self) -> None:
        users = self._repository.list_users()
        self._leaderboard = [
            _entry(user) for user in sorted(users, key=lambda user: user.points, reverse=True)
        ]
