"""Domain models for machine occupancy, queueing, scheduling and rewards."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class MachineType(str, Enum):
    WASHER = "Washer"
    DRYER = "Dryer"


class MachineStatus(str, Enum):
    FREE = "Free"
    BUSY = "Busy"
    IDLE = "Idle"


class NotificationLevel(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    FINAL = "final"


class UserRole(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class SlotStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MachineCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    BROKEN = "broken"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationType(str, Enum):
    QUEUE_UPDATE = "queue_update"
    SLOT_REMINDER = "slot_reminder"
    MACHINE_AVAILABLE = "machine_available"
    FEEDBACK_REQUEST = "feedback_request"
    FORGOTTEN_LAUNDRY = "forgotten_laundry"


@dataclass(frozen=True)
class UserRef:
    """Identity snapshot copied onto a machine; never a live link."""

    name: str
    residence: str


@dataclass(frozen=True)
class Machine:
    id: int
    type: MachineType
    residence: str
    status: MachineStatus = MachineStatus.FREE
    occupant: Optional[UserRef] = None
    cycle_end_time: Optional[datetime] = None
    predicted_end_time: Optional[datetime] = None
    notification_level: NotificationLevel = NotificationLevel.NORMAL
    notified_almost_done: bool = False
    last_used_at: Optional[datetime] = None
    total_usage_count: int = 0

    @property
    def label(self) -> str:
        return f"{self.type.value} {self.id}"


@dataclass
class EarnedBadge:
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    earned_at: datetime


@dataclass
class UserProfile:
    name: str
    residence: str
    role: UserRole = UserRole.STUDENT
    delay_history: list[int] = field(default_factory=list)
    points: int = 0
    badges: list[EarnedBadge] = field(default_factory=list)
    streak: int = 0
    total_cycles: int = 0
    on_time_collections: int = 0

    @property
    def ref(self) -> UserRef:
        return UserRef(name=self.name, residence=self.residence)

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @property
    def on_time_rate(self) -> float:
        if self.total_cycles <= 0:
            return 0.0
        return self.on_time_collections / self.total_cycles * 100.0

    def badge_ids(self) -> set[str]:
        return {badge.id for badge in self.badges}


@dataclass(frozen=True)
class QueueEntry:
    id: str
    machine_id: int
    residence: str
    user_id: str
    position: int
    estimated_wait_minutes: int
    joined_at: datetime
    notified: bool = False


@dataclass(frozen=True)
class SlotRequest:
    machine_id: int
    machine_type: MachineType
    start_time: datetime
    end_time: datetime
    user_id: str
    residence: str


@dataclass(frozen=True)
class LaundrySlot:
    id: str
    machine_id: int
    machine_type: MachineType
    start_time: datetime
    end_time: datetime
    user_id: str
    residence: str
    status: SlotStatus
    created_at: datetime


@dataclass(frozen=True)
class MachineFeedback:
    id: str
    machine_id: int
    machine_type: MachineType
    user_id: str
    residence: str
    rating: int
    condition: MachineCondition
    issues: frozenset[str]
    comments: str
    timestamp: datetime
    resolved: bool = False


@dataclass(frozen=True)
class UserNotification:
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    priority: Priority
    timestamp: datetime
    read: bool = False
    data: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class LeaderboardEntry:
    name: str
    residence: str
    points: int
    badges: int
    streak: int
    on_time_rate: float


@dataclass(frozen=True)
class Alert:
    """Short-lived in-app message; escalation events are delivered as alerts."""

    id: str
    recipient: Optional[UserRef]
    message: str
    level: NotificationLevel
    kind: str
    timestamp: datetime
    dismiss_at: datetime
    machine_id: Optional[int] = None
    read: bool = False
