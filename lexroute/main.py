"""lexroute — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from lexroute.adapters.notifications.webhook_adapter import WebhookNotificationSink
from lexroute.adapters.persistence.database import async_session_factory, engine
from lexroute.adapters.scheduler.sla_scheduler import SLAScheduler
from lexroute.config import settings
from lexroute.domain.errors import (
    ConcurrencyConflict,
    InvalidProvider,
    InvalidTransition,
    NotFound,
    RoutingError,
    ValidationError,
)
from lexroute.infrastructure.api.dependencies import (
    build_policy_catalog,
    build_reconciler,
    notifier,
)
from lexroute.infrastructure.api.routes_health import router as health_router
from lexroute.infrastructure.api.routes_requests import router as requests_router
from lexroute.infrastructure.api.routes_routing import router as routing_router
from lexroute.infrastructure.api.routes_sla import router as sla_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (NotFound, 404),
    (ValidationError, 422),
    (InvalidTransition, 409),
    (ConcurrencyConflict, 409),
    (InvalidProvider, 400),
)


async def run_scheduled_sla_cycle() -> None:
    """Scheduler job: one cycle in its own session and transaction."""
    async with async_session_factory() as session:
        try:
            clock = await build_policy_catalog(session).current_clock()
            await build_reconciler(session, clock).run_cycle()
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Scheduled SLA cycle failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database not available on startup: %s", e)

    scheduler = SLAScheduler(interval_seconds=settings.sla_cycle_interval_seconds)
    if settings.sla_scheduler_enabled:
        scheduler.start(run_scheduled_sla_cycle)

    yield

    scheduler.stop()
    if isinstance(notifier, WebhookNotificationSink):
        await notifier.close()
    await engine.dispose()


async def routing_error_handler(request: Request, exc: RoutingError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": exc.message, "context": exc.details},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="lexroute",
        description="Rule-based request routing, request lifecycle and SLA tracking",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS for the admin frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RoutingError, routing_error_handler)

    # Register routers
    app.include_router(health_router, prefix="/api")
    app.include_router(routing_router, prefix="/api")
    app.include_router(requests_router, prefix="/api")
    app.include_router(sla_router, prefix="/api")

    return app


app = create_app()
