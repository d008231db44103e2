"""Pydantic response models shared by the controllers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aura.domain.models import (
    MachineCondition,
    MachineStatus,
    MachineType,
    NotificationLevel,
    NotificationType,
    Priority,
    SlotStatus,
    UserRole,
)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes from clients are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserRefResponse(ORMModel):
    name: str
    residence: str


class BadgeResponse(ORMModel):
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    earned_at: datetime


class UserResponse(ORMModel):
    name: str
    residence: str
    role: UserRole
    points: int = Field(ge=0)
    streak: int = Field(ge=0)
    total_cycles: int = Field(ge=0)
    on_time_collections: int = Field(ge=0)
    on_time_rate: float
    delay_history: list[int]
    badges: list[BadgeResponse]


class MachineResponse(ORMModel):
    id: int
    type: MachineType
    residence: str
    label: str
    status: MachineStatus
    occupant: Optional[UserRefResponse] = None
    cycle_end_time: Optional[datetime] = None
    predicted_end_time: Optional[datetime] = None
    notification_level: NotificationLevel
    notified_almost_done: bool
    last_used_at: Optional[datetime] = None
    total_usage_count: int


class MachineSnapshotResponse(ORMModel):
    machine: MachineResponse
    minutes_remaining: Optional[int] = None
    minutes_idle: Optional[int] = None


class ResidenceOverviewResponse(ORMModel):
    residence: str
    counts: dict[str, dict[str, int]]
    utilization_rate: float
    average_wait_minutes: float


class ResidenceUsageResponse(ResidenceOverviewResponse):
    machines: list[MachineSnapshotResponse]


class QueueEntryResponse(ORMModel):
    id: str
    machine_id: int
    residence: str
    user_id: str
    position: int = Field(ge=1)
    estimated_wait_minutes: int = Field(ge=0)
    joined_at: datetime
    notified: bool


class SlotResponse(ORMModel):
    id: str
    machine_id: int
    machine_type: MachineType
    start_time: datetime
    end_time: datetime
    user_id: str
    residence: str
    status: SlotStatus
    created_at: datetime


class FeedbackResponse(ORMModel):
    id: str
    machine_id: int
    machine_type: MachineType
    user_id: str
    residence: str
    rating: int = Field(ge=1, le=5)
    condition: MachineCondition
    issues: list[str]
    comments: str
    timestamp: datetime
    resolved: bool

    @field_validator("issues", mode="before")
    @classmethod
    def sort_issues(cls, value: Any) -> list[str]:
        return sorted(value)


class NotificationResponse(ORMModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    priority: Priority
    timestamp: datetime
    read: bool
    data: Optional[dict[str, Any]] = None


class AlertResponse(ORMModel):
    id: str
    message: str
    level: NotificationLevel
    kind: str
    timestamp: datetime
    dismiss_at: datetime
    machine_id: Optional[int] = None
    read: bool


class LeaderboardEntryResponse(ORMModel):
    name: str
    residence: str
    points: int
    badges: int
    streak: int
    on_time_rate: float
