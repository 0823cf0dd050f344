"""SQLAlchemy repository implementations."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lexroute.adapters.persistence.models import (
    AssignmentLogModel,
    ProviderOrganizationModel,
    ProviderUserModel,
    RoundRobinStateModel,
    RoutingRuleModel,
    ServiceRequestModel,
    SLAPolicyModel,
)
from lexroute.application.ports.assignment_repo import AssignmentLog
from lexroute.application.ports.provider_directory import ProviderDirectory
from lexroute.application.ports.provider_validator import ProviderValidator
from lexroute.application.ports.request_repo import RequestRepository
from lexroute.application.ports.round_robin_repo import RoundRobinRepository
from lexroute.application.ports.rule_repo import RoutingRuleRepository
from lexroute.application.ports.sla_policy_repo import SLAPolicyRepository
from lexroute.application.ports.transaction import TransactionScope
from lexroute.domain.entities.assignment import AssignmentResult
from lexroute.domain.entities.provider import ProviderCandidate, ProviderValidation
from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.entities.routing_rule import (
    RoutingConditions,
    RoutingRule,
    TargetCriteria,
)
from lexroute.domain.entities.sla_policy import SLAPolicy
from lexroute.domain.errors import ValidationError
from lexroute.domain.policies.request_state import ACTIVE_STATUSES, FINISHED_STATUSES
from lexroute.domain.value_objects.enums import (
    AssignmentFailure,
    RequestStatus,
    RequestType,
    SelectionStrategy,
    SLAStatus,
    Urgency,
)

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_FINISHED = [s.value for s in FINISHED_STATUSES]

# ─── Mappers ─────────────────────────────────────────────────────────


def _request_to_domain(m: ServiceRequestModel) -> ServiceRequest:
    return ServiceRequest(
        id=m.id,
        request_number=m.request_number,
        subscriber_id=m.subscriber_id,
        request_type=RequestType(m.request_type),
        urgency=Urgency(m.urgency),
        status=RequestStatus(m.status),
        submitted_at=m.submitted_at,
        sla_deadline=m.sla_deadline,
        sla_status=SLAStatus(m.sla_status),
        assigned_provider_id=m.assigned_provider_id,
        category=m.category,
        region=m.region,
        subscriber_tier=m.subscriber_tier,
        amount=m.amount,
        specializations=frozenset(m.specializations or ()),
        scheduled_at=m.scheduled_at,
        completed_at=m.completed_at,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _rule_to_domain(m: RoutingRuleModel) -> RoutingRule:
    return RoutingRule(
        id=m.id,
        name=m.name,
        priority=m.priority,
        conditions=RoutingConditions.from_storage(m.conditions),
        target=TargetCriteria.from_storage(m.target),
        strategy=SelectionStrategy(m.strategy),
        is_active=m.is_active,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _provider_to_domain(m: ProviderUserModel, active: int = 0) -> ProviderCandidate:
    return ProviderCandidate(
        provider_user_id=m.id,
        provider_id=m.provider_id,
        specializations=frozenset(m.specializations or ()),
        is_certified=m.is_certified,
        experience_years=m.experience_years,
        rating=m.rating,
        active_request_count=active,
        is_active=m.is_active,
        can_accept_requests=m.can_accept_requests,
        region=m.region,
    )


def _log_to_domain(m: AssignmentLogModel) -> AssignmentResult:
    return AssignmentResult(
        success=m.success,
        request_id=m.request_id,
        timestamp=m.attempted_at,
        provider_id=m.provider_id,
        rule_id=m.rule_id,
        reason=AssignmentFailure(m.reason) if m.reason else None,
        strategy=SelectionStrategy(m.strategy) if m.strategy else None,
        already_assigned=m.already_assigned,
        note=m.note,
    )


def _policy_to_domain(m: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=m.id,
        name=m.name,
        request_type=RequestType(m.request_type),
        urgency=Urgency(m.urgency),
        hours=m.hours,
        is_active=m.is_active,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlTransactionScope(TransactionScope):
    def __init__(self, session: AsyncSession):
        self._s = session

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self._s.begin_nested():
            yield


class SqlRequestRepository(RequestRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def add(self, request: ServiceRequest) -> ServiceRequest:
        m = ServiceRequestModel(
            id=request.id,
            request_number=request.request_number,
            subscriber_id=request.subscriber_id,
            request_type=request.request_type.value,
            urgency=request.urgency.value,
            status=request.status.value,
            assigned_provider_id=request.assigned_provider_id,
            category=request.category,
            region=request.region,
            subscriber_tier=request.subscriber_tier,
            amount=request.amount,
            specializations=sorted(request.specializations),
            submitted_at=request.submitted_at,
            sla_deadline=request.sla_deadline,
            sla_status=request.sla_status.value,
            scheduled_at=request.scheduled_at,
            completed_at=request.completed_at,
            created_at=request.created_at or request.submitted_at,
            updated_at=request.updated_at or request.submitted_at,
        )
        self._s.add(m)
        try:
            await self._s.flush()
        except IntegrityError:
            raise ValidationError(
                f"Request number '{request.request_number}' already exists",
                {"field": "request_number"},
            ) from None
        return _request_to_domain(m)

    async def get_by_id(self, request_id: str) -> ServiceRequest | None:
        # populate_existing: conditional UPDATEs bypass the identity map.
        result = await self._s.execute(
            select(ServiceRequestModel)
            .where(ServiceRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _request_to_domain(m) if m else None

    async def list_active(self) -> list[ServiceRequest]:
        result = await self._s.execute(
            select(ServiceRequestModel)
            .where(ServiceRequestModel.status.in_(_ACTIVE))
            .order_by(ServiceRequestModel.sla_deadline)
        )
        return [_request_to_domain(m) for m in result.scalars()]

    async def write_assignment(self, request_id: str, provider_id: str, now: datetime) -> bool:
        result = await self._s.execute(
            update(ServiceRequestModel)
            .where(
                ServiceRequestModel.id == request_id,
                ServiceRequestModel.status == RequestStatus.PENDING.value,
            )
            .values(
                assigned_provider_id=provider_id,
                status=RequestStatus.ASSIGNED.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return result.rowcount == 1

    async def write_request_provider(self, request_id: str, provider_id: str, now: datetime) -> None:
        await self._s.execute(
            update(ServiceRequestModel)
            .where(ServiceRequestModel.id == request_id)
            .values(assigned_provider_id=provider_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()

    async def apply_transition(self, request: ServiceRequest, expected_status: RequestStatus) -> bool:
        result = await self._s.execute(
            update(ServiceRequestModel)
            .where(
                ServiceRequestModel.id == request.id,
                ServiceRequestModel.status == expected_status.value,
            )
            .values(
                status=request.status.value,
                assigned_provider_id=request.assigned_provider_id,
                scheduled_at=request.scheduled_at,
                completed_at=request.completed_at,
                updated_at=request.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return result.rowcount == 1

    async def update_sla(
        self,
        request_id: str,
        sla_status: SLAStatus,
        sla_deadline: datetime | None = None,
    ) -> None:
        values = {"sla_status": sla_status.value}
        if sla_deadline is not None:
            values["sla_deadline"] = sla_deadline
        await self._s.execute(
            update(ServiceRequestModel)
            .where(ServiceRequestModel.id == request_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()


class SqlRoutingRuleRepository(RoutingRuleRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def add(self, rule: RoutingRule) -> RoutingRule:
        m = RoutingRuleModel(
            id=rule.id,
            name=rule.name,
            priority=rule.priority,
            is_active=rule.is_active,
            strategy=rule.strategy.value,
            conditions=rule.conditions.to_storage(),
            target=rule.target.to_storage(),
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )
        self._s.add(m)
        await self._s.flush()
        return _rule_to_domain(m)

    async def get_by_id(self, rule_id: str) -> RoutingRule | None:
        m = await self._s.get(RoutingRuleModel, rule_id)
        return _rule_to_domain(m) if m else None

    async def update(self, rule: RoutingRule) -> RoutingRule:
        await self._s.execute(
            update(RoutingRuleModel)
            .where(RoutingRuleModel.id == rule.id)
            .values(
                name=rule.name,
                priority=rule.priority,
                is_active=rule.is_active,
                strategy=rule.strategy.value,
                conditions=rule.conditions.to_storage(),
                target=rule.target.to_storage(),
                updated_at=rule.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return rule

    async def delete(self, rule_id: str) -> bool:
        result = await self._s.execute(
            delete(RoutingRuleModel).where(RoutingRuleModel.id == rule_id)
        )
        await self._s.flush()
        return result.rowcount > 0

    async def list_all(self) -> list[RoutingRule]:
        result = await self._s.execute(
            select(RoutingRuleModel).order_by(
                RoutingRuleModel.priority, RoutingRuleModel.created_at, RoutingRuleModel.id
            )
        )
        return [_rule_to_domain(m) for m in result.scalars()]


class SqlProviderDirectory(ProviderDirectory):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def list_eligible_providers(self) -> list[ProviderCandidate]:
        result = await self._s.execute(
            select(ProviderUserModel)
            .join(ProviderOrganizationModel)
            .where(
                ProviderUserModel.is_active.is_(True),
                ProviderUserModel.can_accept_requests.is_(True),
                ProviderOrganizationModel.is_active.is_(True),
                ProviderOrganizationModel.is_approved.is_(True),
            )
            .order_by(ProviderUserModel.id)
        )
        providers = list(result.scalars())
        if not providers:
            return []

        # Workload is counted at call time, one grouped query for the whole pool.
        counts = await self._s.execute(
            select(ServiceRequestModel.assigned_provider_id, func.count())
            .where(
                ServiceRequestModel.assigned_provider_id.in_([p.id for p in providers]),
                ServiceRequestModel.status.in_(_ACTIVE),
            )
            .group_by(ServiceRequestModel.assigned_provider_id)
        )
        active = {provider_id: n for provider_id, n in counts.all()}
        return [_provider_to_domain(p, active.get(p.id, 0)) for p in providers]

    async def active_request_count(self, provider_id: str) -> int:
        result = await self._s.execute(
            select(func.count())
            .select_from(ServiceRequestModel)
            .where(
                ServiceRequestModel.assigned_provider_id == provider_id,
                ServiceRequestModel.status.in_(_ACTIVE),
            )
        )
        return result.scalar_one()

    async def completed_count_since(self, provider_id: str, since: datetime) -> int:
        result = await self._s.execute(
            select(func.count())
            .select_from(ServiceRequestModel)
            .where(
                ServiceRequestModel.assigned_provider_id == provider_id,
                ServiceRequestModel.status.in_(_FINISHED),
                ServiceRequestModel.completed_at >= since,
            )
        )
        return result.scalar_one()


class SqlProviderValidator(ProviderValidator):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def validate(self, provider_id: str) -> ProviderValidation:
        result = await self._s.execute(
            select(ProviderUserModel, ProviderOrganizationModel)
            .join(ProviderOrganizationModel)
            .where(ProviderUserModel.id == provider_id)
        )
        row = result.one_or_none()
        if row is None:
            return ProviderValidation(valid=False, error="provider not found")

        user, org = row
        if not org.is_approved:
            return ProviderValidation(valid=False, error="organization is not approved")
        if not (user.is_active and org.is_active):
            return ProviderValidation(valid=False, error="provider is not active")
        if not user.can_accept_requests:
            return ProviderValidation(valid=False, error="provider is not accepting requests")
        return ProviderValidation(valid=True, provider=_provider_to_domain(user))


class SqlAssignmentLog(AssignmentLog):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def record(self, result: AssignmentResult) -> None:
        # Savepoint: a failed log write must not poison the request transaction.
        async with self._s.begin_nested():
            self._s.add(
                AssignmentLogModel(
                    request_id=result.request_id,
                    success=result.success,
                    provider_id=result.provider_id,
                    rule_id=result.rule_id,
                    reason=result.reason.value if result.reason else None,
                    strategy=result.strategy.value if result.strategy else None,
                    already_assigned=result.already_assigned,
                    note=result.note,
                    attempted_at=result.timestamp,
                )
            )
            await self._s.flush()

    async def get_all(self) -> list[AssignmentResult]:
        result = await self._s.execute(
            select(AssignmentLogModel).order_by(AssignmentLogModel.id)
        )
        return [_log_to_domain(m) for m in result.scalars()]


class SqlRoundRobinRepository(RoundRobinRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def increment_counter(self, rr_key: str) -> int:
        # Create the row if missing without racing a concurrent first use.
        await self._s.execute(
            insert(RoundRobinStateModel)
            .values(rr_key=rr_key, counter=0)
            .on_conflict_do_nothing(index_elements=["rr_key"])
        )
        result = await self._s.execute(
            select(RoundRobinStateModel)
            .where(RoundRobinStateModel.rr_key == rr_key)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one()
        old_value = m.counter
        m.counter += 1
        await self._s.flush()
        return old_value


class SqlSLAPolicyRepository(SLAPolicyRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def add(self, policy: SLAPolicy) -> SLAPolicy:
        m = SLAPolicyModel(
            id=policy.id,
            name=policy.name,
            request_type=policy.request_type.value,
            urgency=policy.urgency.value,
            hours=policy.hours,
            is_active=policy.is_active,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
        )
        try:
            async with self._s.begin_nested():
                self._s.add(m)
                await self._s.flush()
        except IntegrityError:
            raise ValidationError(
                f"A policy for {policy.request_type.value}/{policy.urgency.value} already exists",
                {"request_type": policy.request_type.value, "urgency": policy.urgency.value},
            ) from None
        return _policy_to_domain(m)

    async def get_by_id(self, policy_id: str) -> SLAPolicy | None:
        m = await self._s.get(SLAPolicyModel, policy_id)
        return _policy_to_domain(m) if m else None

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        await self._s.execute(
            update(SLAPolicyModel)
            .where(SLAPolicyModel.id == policy.id)
            .values(
                name=policy.name,
                hours=policy.hours,
                is_active=policy.is_active,
                updated_at=policy.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.flush()
        return policy

    async def delete(self, policy_id: str) -> bool:
        result = await self._s.execute(
            delete(SLAPolicyModel).where(SLAPolicyModel.id == policy_id)
        )
        await self._s.flush()
        return result.rowcount > 0

    async def list_all(self) -> list[SLAPolicy]:
        result = await self._s.execute(
            select(SLAPolicyModel).order_by(SLAPolicyModel.request_type, SLAPolicyModel.urgency)
        )
        return [_policy_to_domain(m) for m in result.scalars()]
