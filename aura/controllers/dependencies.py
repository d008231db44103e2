"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from aura.domain.models import UserProfile
from aura.services.auth_service import InvalidLoginError, InvalidSessionError, SessionService
from aura.services.feedback_service import FeedbackNotFoundError
from aura.services.gamification_service import UnknownUserError
from aura.services.laundry_service import (
    LaundryWorkflowService,
    NothingToReportError,
    PermissionDeniedError,
)
from aura.services.machine_registry import (
    InvalidTransitionError,
    MachineNotFoundError,
    ResidenceNotFoundError,
)
from aura.services.notification_service import NotificationNotFoundError
from aura.services.queue_service import AlreadyQueuedError, QueueEntryNotFoundError
from aura.services.scheduler_service import (
    SchedulingConflictError,
    SlotNotFoundError,
    SlotStateError,
)
from aura.utils.logger import get_logger


logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_NOT_FOUND = (
    MachineNotFoundError,
    ResidenceNotFoundError,
    SlotNotFoundError,
    FeedbackNotFoundError,
    NotificationNotFoundError,
    QueueEntryNotFoundError,
    UnknownUserError,
)
_CONFLICT = (
    InvalidTransitionError,
    SchedulingConflictError,
    SlotStateError,
    AlreadyQueuedError,
    NothingToReportError,
)


def get_workflow_service(request: Request) -> LaundryWorkflowService:
    service = getattr(request.app.state, "laundry_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Laundry service is not initialized",
        )
    return service


def get_session_service(
    workflow_service: LaundryWorkflowService = Depends(get_workflow_service),
) -> SessionService:
    return workflow_service.sessions


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session_service: SessionService = Depends(get_session_service),
) -> UserProfile:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        return session_service.resolve(credentials.credentials)
    except (InvalidSessionError, UnknownUserError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


async def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return user


def resolve_residence(user: UserProfile, requested: Optional[str]) -> str:
    """Students always act on their own residence; the admin must name one."""
    if not user.is_admin:
        return user.residence
    if not requested:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="residence query parameter is required for administrators",
        )
    return requested


@contextmanager
def service_errors(action: str) -> Iterator[None]:
    """Translate service exceptions into HTTP responses."""
    try:
        yield
    except HTTPException:
        raise
    except InvalidSessionError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except _NOT_FOUND as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except _CONFLICT as exc:
        reason = getattr(exc, "reason", None)
        detail = {"reason": reason, "message": str(exc)} if reason else str(exc)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail) from exc
    except (InvalidLoginError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected failure | action=%s", action)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}",
        ) from exc
