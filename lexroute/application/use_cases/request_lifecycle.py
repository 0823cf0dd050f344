"""RequestLifecycleService — create requests and walk them through their statuses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from lexroute.application.best_effort import run_best_effort
from lexroute.application.ports.notification_port import NotificationSink
from lexroute.application.ports.provider_validator import ProviderValidator
from lexroute.application.ports.request_repo import RequestRepository
from lexroute.application.use_cases.assign_request import AssignmentEngine
from lexroute.domain.entities.assignment import AssignmentResult
from lexroute.domain.entities.notification import NotificationEvent
from lexroute.domain.entities.request import (
    NewRequest,
    ServiceRequest,
)
from lexroute.domain.errors import (
    ConcurrencyConflict,
    InvalidProvider,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from lexroute.domain.policies.request_state import apply_transition
from lexroute.domain.policies.sla_clock import SLAClock
from lexroute.domain.value_objects.enums import (
    NotificationKind,
    RequestStatus,
    RequestType,
    Urgency,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateRequestOutcome:
    """Stored request plus the auto-assign result (None if auto-assign raised)."""

    request: ServiceRequest
    assignment: AssignmentResult | None


class RequestLifecycleService:
    def __init__(
        self,
        request_repo: RequestRepository,
        engine: AssignmentEngine,
        validator: ProviderValidator,
        notifier: NotificationSink,
        clock: SLAClock,
    ):
        self._requests = request_repo
        self._engine = engine
        self._validator = validator
        self._notifier = notifier
        self._clock = clock

    async def create_request(
        self, new: NewRequest, now: datetime | None = None
    ) -> CreateRequestOutcome:
        """Persist a pending request, then try to auto-assign it.

        Auto-assignment is best-effort: its failures are logged and the
        request stays pending.
        """
        now = now or datetime.now(timezone.utc)
        if not isinstance(new.request_type, RequestType):
            raise ValidationError("request_type is required", {"field": "request_type"})
        if not isinstance(new.urgency, Urgency):
            raise ValidationError("urgency is invalid", {"field": "urgency"})

        deadline = self._clock.compute_deadline(new.request_type, new.urgency, now)
        request = ServiceRequest(
            id=new.id,
            request_number=new.request_number,
            subscriber_id=new.subscriber_id,
            request_type=new.request_type,
            urgency=new.urgency,
            status=RequestStatus.PENDING,
            submitted_at=now,
            sla_deadline=deadline,
            sla_status=self._clock.classify(now, deadline),
            category=new.category,
            region=new.region,
            subscriber_tier=new.subscriber_tier,
            amount=new.amount,
            specializations=frozenset(new.specializations),
            created_at=now,
            updated_at=now,
        )
        stored = await self._requests.add(request)
        logger.info(
            "Request %s created (%s, %s), SLA deadline %s",
            stored.request_number, stored.request_type.value,
            stored.urgency.value, deadline.isoformat(),
        )

        outcome = await run_best_effort(
            f"auto-assign {stored.request_number}",
            self._engine.auto_assign(stored.id, stored.attributes(), now=now),
        )
        if outcome.succeeded and not outcome.value.success:
            logger.warning(
                "Request %s left pending: %s",
                stored.request_number, outcome.value.reason.value,
            )

        refreshed = await self._requests.get_by_id(stored.id)
        return CreateRequestOutcome(request=refreshed or stored, assignment=outcome.value)

    async def assign(
        self, request_id: str, provider_id: str, now: datetime | None = None
    ) -> ServiceRequest:
        """Admin assignment of a pending request."""
        now = now or datetime.now(timezone.utc)
        request = await self._load(request_id)

        validation = await self._validator.validate(provider_id)
        if not validation.valid:
            raise InvalidProvider(provider_id, validation.error or "provider is not valid")
        if request.status != RequestStatus.PENDING:
            raise InvalidTransition(request.status, RequestStatus.ASSIGNED, request.request_type)

        if not await self._requests.write_assignment(request_id, provider_id, now):
            raise ConcurrencyConflict(
                f"Request {request_id} is no longer pending",
                {"request_id": request_id},
            )
        logger.info("Request %s manually assigned to %s", request.request_number, provider_id)

        event = NotificationEvent.for_request(
            NotificationKind.REQUEST_ASSIGNED, request, now, provider_id=provider_id,
        )
        await run_best_effort(f"notify {event.kind.value}", self._notifier.notify(event))
        return await self._load(request_id)

    async def schedule(
        self, request_id: str, scheduled_at: datetime, now: datetime | None = None
    ) -> ServiceRequest:
        now = now or datetime.now(timezone.utc)
        self._require_future(scheduled_at, now)
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.SCHEDULED, now, scheduled_at=scheduled_at)

    async def start(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.IN_PROGRESS, now)

    async def end(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        """Finish the work: litigation cases close, everything else completes."""
        request = await self._load(request_id)
        target = (
            RequestStatus.CLOSED
            if request.request_type == RequestType.LITIGATION
            else RequestStatus.COMPLETED
        )
        return await self._advance(request, target, now)

    async def cancel(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.CANCELLED, now)

    async def mark_no_show(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        now = now or datetime.now(timezone.utc)
        request = await self._load(request_id)
        if request.scheduled_at is None or now < request.scheduled_at:
            raise ValidationError(
                "Cannot mark no-show before the scheduled time",
                {"scheduled_at": request.scheduled_at.isoformat() if request.scheduled_at else None},
            )
        return await self._advance(request, RequestStatus.NO_SHOW, now)

    async def reschedule(
        self, request_id: str, new_time: datetime, now: datetime | None = None
    ) -> ServiceRequest:
        now = now or datetime.now(timezone.utc)
        self._require_future(new_time, now)
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.RESCHEDULED, now, scheduled_at=new_time)

    async def send_quote(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.QUOTE_SENT, now)

    async def dispute(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.DISPUTED, now)

    async def close(self, request_id: str, now: datetime | None = None) -> ServiceRequest:
        request = await self._load(request_id)
        return await self._advance(request, RequestStatus.CLOSED, now)

    # ─── Helpers ───

    async def _advance(
        self,
        request: ServiceRequest,
        target: RequestStatus,
        now: datetime | None,
        **changes,
    ) -> ServiceRequest:
        now = now or datetime.now(timezone.utc)
        updated = apply_transition(request, target, now, **changes)
        if not await self._requests.apply_transition(updated, expected_status=request.status):
            raise ConcurrencyConflict(
                f"Request {request.id} changed while moving to {target.value}",
                {"request_id": request.id, "expected": request.status.value},
            )
        logger.info(
            "Request %s: %s → %s",
            request.request_number, request.status.value, updated.status.value,
        )
        return updated

    async def _load(self, request_id: str) -> ServiceRequest:
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise NotFound("ServiceRequest", request_id)
        return request

    @staticmethod
    def _require_future(when: datetime, now: datetime) -> None:
        if when <= now:
            raise ValidationError(
                "Scheduled time must be in the future", {"scheduled_at": when.isoformat()}
            )
