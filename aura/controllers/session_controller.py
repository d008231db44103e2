"""Controller layer for login, alerts, notifications and chat."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from aura.controllers.dependencies import get_current_user, get_workflow_service, service_errors
from aura.controllers.schemas import AlertResponse, NotificationResponse, UserResponse
from aura.domain.models import UserProfile
from aura.services.laundry_service import LaundryWorkflowService


router = APIRouter(tags=["session"])


class LoginRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    residence: str = Field(default="", max_length=64)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int = Field(ge=0)


class ChatRequest(BaseModel):
    question: str = Field(min_length=1, max_length=500)


class ChatResponse(BaseModel):
    reply: str


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> LoginResponse:
    with service_errors("login"):
        session = workflow_service.login(payload.name, payload.residence)
        return LoginResponse(
            access_token=session.token,
            user=UserResponse.model_validate(session.user),
        )


@router.get("/me", response_model=UserResponse, status_code=status.HTTP_200_OK)
async def me(user: UserProfile = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.get("/alerts", response_model=list[AlertResponse], status_code=status.HTTP_200_OK)
async def active_alerts(
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> list[AlertResponse]:
    with service_errors("load alerts"):
        return [AlertResponse.model_validate(alert) for alert in workflow_service.alerts_for(user)]


@router.get("/notifications", response_model=NotificationListResponse, status_code=status.HTTP_200_OK)
async def list_notifications(
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> NotificationListResponse:
    with service_errors("load notifications"):
        items = workflow_service.notifications_for(user)
        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(item) for item in items],
            unread_count=workflow_service.unread_notifications(user),
        )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    status_code=status.HTTP_200_OK,
)
async def mark_notification_read(
    notification_id: str,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> NotificationResponse:
    with service_errors("mark notification read"):
        return NotificationResponse.model_validate(
            workflow_service.mark_notification_read(user, notification_id)
        )


# Plain ``def``: the chat collaborator may block on the network.
@router.post("/chat", response_model=ChatResponse, status_code=status.HTTP_200_OK)
def chat(
    payload: ChatRequest,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> ChatResponse:
    with service_errors("answer chat"):
        return ChatResponse(reply=workflow_service.chat(user, payload.question))
