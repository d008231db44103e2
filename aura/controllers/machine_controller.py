"""Controller layer for machine lifecycle and queue endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from aura.controllers.dependencies import (
    get_current_user,
    get_workflow_service,
    require_admin,
    resolve_residence,
    service_errors,
)
from aura.controllers.schemas import (
    BadgeResponse,
    MachineResponse,
    QueueEntryResponse,
    ResidenceOverviewResponse,
    ResidenceUsageResponse,
)
from aura.domain.models import UserProfile
from aura.services.laundry_service import LaundryWorkflowService


router = APIRouter(prefix="/machines", tags=["machines"])


class StartCycleRequest(BaseModel):
    duration_minutes: int = Field(gt=0, le=240)


class StartCycleResponse(BaseModel):
    machine: MachineResponse
    predicted_delay_minutes: int = Field(ge=0)
    reminder_message: Optional[str] = None
    prediction_source: Optional[str] = None


class CollectResponse(BaseModel):
    machine: MachineResponse
    delay_minutes: int
    on_time: bool
    points_awarded: int
    new_badges: list[BadgeResponse]
    next_in_queue: Optional[QueueEntryResponse] = None


class ForgottenRequest(BaseModel):
    user_name: Optional[str] = Field(default=None, min_length=1, max_length=64)


class ForgottenResponse(BaseModel):
    notified: list[str]


class QueueResponse(BaseModel):
    machine_id: int
    entries: list[QueueEntryResponse]


@router.get("", response_model=ResidenceUsageResponse, status_code=status.HTTP_200_OK)
async def list_machines(
    residence: Optional[str] = Query(default=None),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> ResidenceUsageResponse:
    target = resolve_residence(user, residence)
    with service_errors("load machines"):
        return ResidenceUsageResponse.model_validate(workflow_service.machines_for(target))


@router.get("/overview", response_model=list[ResidenceOverviewResponse], status_code=status.HTTP_200_OK)
async def machines_overview(
    _admin: UserProfile = Depends(require_admin),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> list[ResidenceOverviewResponse]:
    with service_errors("load overview"):
        return [ResidenceOverviewResponse.model_validate(usage) for usage in workflow_service.overview()]


# Plain ``def``: the delay prediction may block on the network.
@router.post("/{machine_id}/start", response_model=StartCycleResponse, status_code=status.HTTP_200_OK)
def start_cycle(
    machine_id: int,
    payload: StartCycleRequest,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> StartCycleResponse:
    with service_errors("start cycle"):
        result = workflow_service.start_cycle(user, machine_id, payload.duration_minutes)
        prediction = result.prediction
        return StartCycleResponse(
            machine=MachineResponse.model_validate(result.machine),
            predicted_delay_minutes=prediction.delay_minutes if prediction else 0,
            reminder_message=prediction.message if prediction else None,
            prediction_source=prediction.source if prediction else None,
        )


@router.post("/{machine_id}/collect", response_model=CollectResponse, status_code=status.HTTP_200_OK)
async def collect_laundry(
    machine_id: int,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> CollectResponse:
    with service_errors("collect laundry"):
        report = workflow_service.collect_laundry(user, machine_id)
        return CollectResponse(
            machine=MachineResponse.model_validate(report.machine),
            delay_minutes=report.delay_minutes,
            on_time=report.outcome.on_time,
            points_awarded=report.outcome.points_awarded,
            new_badges=[BadgeResponse.model_validate(badge) for badge in report.outcome.new_badges],
            next_in_queue=(
                QueueEntryResponse.model_validate(report.next_in_queue)
                if report.next_in_queue is not None
                else None
            ),
        )


@router.post("/{machine_id}/forgotten", response_model=ForgottenResponse, status_code=status.HTTP_200_OK)
async def report_forgotten(
    machine_id: int,
    payload: ForgottenRequest,
    residence: Optional[str] = Query(default=None),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> ForgottenResponse:
    target = resolve_residence(user, residence)
    with service_errors("report forgotten laundry"):
        sent = workflow_service.report_forgotten(user, target, machine_id, payload.user_name)
        return ForgottenResponse(notified=[item.user_id for item in sent])


@router.get("/{machine_id}/queue", response_model=QueueResponse, status_code=status.HTTP_200_OK)
async def get_queue(
    machine_id: int,
    residence: Optional[str] = Query(default=None),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> QueueResponse:
    target = resolve_residence(user, residence)
    with service_errors("load queue"):
        entries = workflow_service.queue_for(target, machine_id)
        return QueueResponse(
            machine_id=machine_id,
            entries=[QueueEntryResponse.model_validate(entry) for entry in entries],
        )


@router.post("/{machine_id}/queue", response_model=QueueEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_queue(
    machine_id: int,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> QueueEntryResponse:
    with service_errors("join queue"):
        return QueueEntryResponse.model_validate(workflow_service.join_queue(user, machine_id))


@router.delete("/{machine_id}/queue", response_model=QueueResponse, status_code=status.HTTP_200_OK)
async def leave_queue(
    machine_id: int,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> QueueResponse:
    with service_errors("leave queue"):
        remaining = workflow_service.leave_queue(user, machine_id)
        return QueueResponse(
            machine_id=machine_id,
            entries=[QueueEntryResponse.model_validate(entry) for entry in remaining],
        )


@router.post(
    "/{machine_id}/queue/notify",
    response_model=Optional[QueueEntryResponse],
    status_code=status.HTTP_200_OK,
)
async def notify_next_in_queue(
    machine_id: int,
    residence: Optional[str] = Query(default=None),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> Optional[QueueEntryResponse]:
    target = resolve_residence(user, residence)
    with service_errors("notify queue"):
        head = workflow_service.notify_next_in_queue(target, machine_id)
        return QueueEntryResponse.model_validate(head) if head is not None else None
