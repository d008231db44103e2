"""Controller layer for slot reservations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator

from aura.controllers.dependencies import (
    get_current_user,
    get_workflow_service,
    resolve_residence,
    service_errors,
)
from aura.controllers.schemas import SlotResponse, as_utc
from aura.domain.models import UserProfile
from aura.services.laundry_service import LaundryWorkflowService


router = APIRouter(prefix="/slots", tags=["slots"])


class ScheduleSlotRequest(BaseModel):
    machine_id: int = Field(gt=0)
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def validate_window(self) -> "ScheduleSlotRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be later than start_time")
        return self


class AvailabilityResponse(BaseModel):
    machine_id: int
    start_time: datetime
    end_time: datetime
    available: bool


@router.get("", response_model=list[SlotResponse], status_code=status.HTTP_200_OK)
async def list_slots(
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> list[SlotResponse]:
    with service_errors("load slots"):
        return [SlotResponse.model_validate(slot) for slot in workflow_service.slots_for(user)]


@router.get("/availability", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
async def check_availability(
    machine_id: int = Query(gt=0),
    start_time: datetime = Query(),
    end_time: datetime = Query(),
    residence: Optional[str] = Query(default=None),
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> AvailabilityResponse:
    target = resolve_residence(user, residence)
    start, end = as_utc(start_time), as_utc(end_time)
    with service_errors("check availability"):
        if end <= start:
            raise ValueError("end_time must be later than start_time")
        available = workflow_service.check_availability(target, machine_id, start, end)
        return AvailabilityResponse(machine_id=machine_id, start_time=start, end_time=end, available=available)


@router.post("", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def schedule_slot(
    payload: ScheduleSlotRequest,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> SlotResponse:
    with service_errors("schedule slot"):
        slot = workflow_service.schedule_slot(user, payload.machine_id, payload.start_time, payload.end_time)
        return SlotResponse.model_validate(slot)


@router.post("/{slot_id}/cancel", response_model=SlotResponse, status_code=status.HTTP_200_OK)
async def cancel_slot(
    slot_id: str,
    user: UserProfile = Depends(get_current_user),
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> SlotResponse:
    with service_errors("cancel slot"):
        return SlotResponse.model_validate(workflow_service.cancel_slot(user, slot_id))
