"""Controller layer for feedback, leaderboard and residence statistics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from aura.controllers.dependencies import (
    get_current_user,
    get_workflow_service,
    require_admin,
    service_errors,
)
from aura.controllers.schemas import FeedbackResponse, LeaderboardEntryResponse
from aura.domain.models import MachineCondition, UserProfile
from aura.services.laundry_service import LaundryWorkflowService


router = APIRouter(tags=["community"])


class FeedbackRequest(BaseModel):
    machine_id: int = Field(gt=0)
    rating: int = Field(ge=1, le=5)
    condition: MachineCondition
    issues: list[str] = Field(default_factory=list, max_length=20)
    comments: str = Field(default="", max_length=1000)

    @field_validator("issues")
    @classmethod
    def validate_issues(cls, value: list[str]) -> list[str]:
        for issue in value:
            if len(issue) > 100:
                raise ValueError("issues entries must be at most 100 characters")
        return value


class ResidenceStatsResponse(BaseModel):
    residence: str
    total_users: int = Field(ge=0)
    total_cycles: int = Field(ge=0)
    total_points: int = Field(ge=0)
    average_on_time_rate: int = Field(ge=0, le=100)
    top_users: list[LeaderboardEntryResponse]


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    payload: FeedbackRequest,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> FeedbackResponse:
    with service_errors("submit feedback"):
        feedback = workflow_service.submit_feedback(
            user,
            payload.machine_id,
            payload.rating,
            payload.condition,
            issues=payload.issues,
            comments=payload.comments,
        )
        return FeedbackResponse.model_validate(feedback)


@router.get("/feedback", response_model=list[FeedbackResponse], status_code=status.HTTP_200_OK)
async def list_feedback(
    unresolved_only: bool = Query(default=False),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> list[FeedbackResponse]:
    with service_errors("load feedback"):
        items = workflow_service.list_feedback(user, unresolved_only=unresolved_only)
        return [FeedbackResponse.model_validate(item) for item in items]


@router.post(
    "/feedback/{feedback_id}/resolve",
    response_model=FeedbackResponse,
    status_code=status.HTTP_200_OK,
)
async def resolve_feedback(
    feedback_id: str,
    _admin: UserProfile = Depends(require_admin),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> FeedbackResponse:
    with service_errors("resolve feedback"):
        return FeedbackResponse.model_validate(workflow_service.resolve_feedback(feedback_id))


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse], status_code=status.HTTP_200_OK)
async def leaderboard(
    limit: int = Query(default=10, ge=1, le=100),
    _user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> list[LeaderboardEntryResponse]:
    with service_errors("load leaderboard"):
        entries = workflow_service.leaderboard()[:limit]
        return [LeaderboardEntryResponse.model_validate(entry) for entry in entries]


@router.get(
    "/residences/{name}/stats",
    response_model=ResidenceStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def residence_stats(
    name: str,
    _user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> ResidenceStatsResponse:
    with service_errors("load residence stats"):
        stats = workflow_service.residence_stats(name)
        return ResidenceStatsResponse(
            residence=stats.residence,
            total_users=stats.total_users,
            total_cycles=stats.total_cycles,
            total_points=stats.total_points,
            average_on_time_rate=stats.average_on_time_rate,
            top_users=[LeaderboardEntryResponse.model_validate(entry) for entry in stats.top_users],
        )
