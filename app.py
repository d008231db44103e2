"""
app.py: FastAPI application factory and tick lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and starts the tick driver.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from aura.controllers.community_controller import router as community_router
from aura.controllers.machine_controller import router as machine_router
from aura.controllers.scheduling_controller import router as scheduling_router
from aura.controllers.session_controller import router as session_router
from aura.repository.state_repository import StateRepository
from aura.services.alert_service import AlertFeedService
from aura.services.auth_service import SessionService
from aura.services.clock import Clock, SystemClock, TickDriver
from aura.services.escalation_service import EscalationEngine
from aura.services.feedback_service import FeedbackService
from aura.services.gamification_service import GamificationLedger
from aura.services.laundry_service import LaundryWorkflowService
from aura.services.machine_registry import MachineRegistryService
from aura.services.notification_service import NotificationStore
from aura.services.prediction_service import DelayPredictionService
from aura.services.queue_service import QueueManager
from aura.services.scheduler_service import SlotScheduler
from aura.services.timer_queue import TimerQueue
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    predictor: Optional[DelayPredictionService] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    No global singletons: every dependency is traceable from this function.
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()

    # --- Repository (all process-resident state) ---
    repository = StateRepository(settings)
    repository.initialize_machines()

    # --- Services ---
    timer_queue = TimerQueue()
    registry = MachineRegistryService(repository=repository, settings=settings)
    escalation = EscalationEngine(registry, settings=settings)
    alerts = AlertFeedService(repository=repository, settings=settings)
    notifications = NotificationStore(repository=repository, settings=settings)
    ledger = GamificationLedger(repository=repository, settings=settings)
    queue = QueueManager(notifications, repository=repository, settings=settings)
    scheduler = SlotScheduler(notifications, timer_queue, repository=repository, settings=settings)
    feedback = FeedbackService(notifications, repository=repository, settings=settings)
    predictor = predictor or DelayPredictionService(settings=settings)
    sessions = SessionService(ledger, settings=settings)
    laundry_service = LaundryWorkflowService(
        repository=repository,
        registry=registry,
        escalation=escalation,
        alerts=alerts,
        notifications=notifications,
        ledger=ledger,
        queue=queue,
        scheduler=scheduler,
        feedback=feedback,
        predictor=predictor,
        sessions=sessions,
        timer_queue=timer_queue,
        clock=clock,
        settings=settings,
    )
    tick_driver = TickDriver(laundry_service.tick, settings.tick_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run the tick loop for as long as the server accepts requests."""
        logger.info(
            "Startup: residences=%s | ai_enabled=%s",
            len(repository.list_residences()),
            settings.ai_enabled,
        )
        tick_driver.start()
        try:
            yield
        finally:
            tick_driver.stop()
            logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(session_router)
    app.include_router(machine_router)
    app.include_router(scheduling_router)
    app.include_router(community_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "version": settings.app_version,
            "tick_running": tick_driver.running,
            "pending_timers": len(timer_queue),
        }

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.laundry_service = laundry_service
    app.state.tick_driver = tick_driver

    return app


# Module-level app object for uvicorn
app = create_app()
