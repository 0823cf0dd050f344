"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import asyncio
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexroute.adapters.notifications.webhook_adapter import (
    LoggingNotificationSink,
    WebhookNotificationSink,
)
from lexroute.adapters.persistence.database import get_session
from lexroute.adapters.persistence.repositories import (
    SqlAssignmentLog,
    SqlProviderDirectory,
    SqlProviderValidator,
    SqlRequestRepository,
    SqlRoundRobinRepository,
    SqlRoutingRuleRepository,
    SqlSLAPolicyRepository,
    SqlTransactionScope,
)
from lexroute.application.ports.notification_port import NotificationSink
from lexroute.application.use_cases.assign_request import AssignmentEngine
from lexroute.application.use_cases.candidate_pool import ProviderCandidatePool
from lexroute.application.use_cases.request_lifecycle import RequestLifecycleService
from lexroute.application.use_cases.routing_rules import RoutingRuleCatalog
from lexroute.application.use_cases.sla_policies import SLAPolicyCatalog
from lexroute.application.use_cases.sla_reconciler import SLAReconciler
from lexroute.application.use_cases.sla_tracking import SLATracker
from lexroute.config import settings
from lexroute.domain.policies.sla_clock import SLAClock, parse_hours_overrides

logger = logging.getLogger(__name__)


# Singletons (stateless, or shared on purpose)
base_sla_clock = SLAClock(
    hours=parse_hours_overrides(settings.sla_hours_overrides),
    warning_window=settings.sla_warning_window,
)

if settings.notification_webhook_url:
    notifier: NotificationSink = WebhookNotificationSink(
        settings.notification_webhook_url,
        timeout=settings.notification_timeout_seconds,
    )
    logger.info("Delivering notifications to webhook")
else:
    notifier = LoggingNotificationSink()

# Shared by the scheduler and the manual trigger so cycles never overlap.
sla_cycle_lock = asyncio.Lock()


# ─── Builders (also used outside a request, e.g. by the scheduler) ───


def build_catalog(session: AsyncSession) -> RoutingRuleCatalog:
    return RoutingRuleCatalog(SqlRoutingRuleRepository(session))


def build_policy_catalog(session: AsyncSession) -> SLAPolicyCatalog:
    return SLAPolicyCatalog(SqlSLAPolicyRepository(session), base_sla_clock)


def build_engine(session: AsyncSession, clock: SLAClock) -> AssignmentEngine:
    return AssignmentEngine(
        request_repo=SqlRequestRepository(session),
        catalog=build_catalog(session),
        pool=ProviderCandidatePool(SqlProviderDirectory(session)),
        rr_repo=SqlRoundRobinRepository(session),
        validator=SqlProviderValidator(session),
        notifier=notifier,
        assignment_log=SqlAssignmentLog(session),
        transaction=SqlTransactionScope(session),
        clock=clock,
        default_timeout=settings.auto_assign_timeout_seconds,
    )


def build_reconciler(session: AsyncSession, clock: SLAClock) -> SLAReconciler:
    return SLAReconciler(
        request_repo=SqlRequestRepository(session),
        clock=clock,
        notifier=notifier,
        transaction=SqlTransactionScope(session),
        lock=sla_cycle_lock,
    )


# ─── Request-scoped providers ───


async def get_sla_clock(session: AsyncSession = Depends(get_session)) -> SLAClock:
    """Configured hours with the active admin policies applied."""
    return await build_policy_catalog(session).current_clock()


def get_rule_catalog(session: AsyncSession = Depends(get_session)) -> RoutingRuleCatalog:
    return build_catalog(session)


def get_policy_catalog(session: AsyncSession = Depends(get_session)) -> SLAPolicyCatalog:
    return build_policy_catalog(session)


def get_assignment_engine(
    session: AsyncSession = Depends(get_session),
    clock: SLAClock = Depends(get_sla_clock),
) -> AssignmentEngine:
    return build_engine(session, clock)


def get_lifecycle_service(
    session: AsyncSession = Depends(get_session),
    clock: SLAClock = Depends(get_sla_clock),
) -> RequestLifecycleService:
    return RequestLifecycleService(
        request_repo=SqlRequestRepository(session),
        engine=build_engine(session, clock),
        validator=SqlProviderValidator(session),
        notifier=notifier,
        clock=clock,
    )


def get_request_repo(session: AsyncSession = Depends(get_session)) -> SqlRequestRepository:
    return SqlRequestRepository(session)


def get_sla_reconciler(
    session: AsyncSession = Depends(get_session),
    clock: SLAClock = Depends(get_sla_clock),
) -> SLAReconciler:
    return build_reconciler(session, clock)


def get_sla_tracker(
    session: AsyncSession = Depends(get_session),
    clock: SLAClock = Depends(get_sla_clock),
) -> SLATracker:
    return SLATracker(SqlRequestRepository(session), clock)
