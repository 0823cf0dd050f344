"""SLATracker — read-only SLA views of requests: status, breaches, urgency order."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from lexroute.application.ports.request_repo import RequestRepository
from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.errors import NotFound
from lexroute.domain.policies.request_state import is_terminal
from lexroute.domain.policies.sla_clock import SLAClock, percent_elapsed, urgency_score
from lexroute.domain.value_objects.enums import RequestStatus, SLAStatus


@dataclass(frozen=True)
class RequestSLAView:
    request_id: str
    request_number: str
    status: RequestStatus
    sla_deadline: datetime
    stored_sla_status: SLAStatus
    current_sla_status: SLAStatus
    seconds_remaining: int
    percent_elapsed: int
    urgency_score: int

    @property
    def is_breached(self) -> bool:
        return self.current_sla_status == SLAStatus.BREACHED

    @property
    def is_at_risk(self) -> bool:
        return self.current_sla_status == SLAStatus.AT_RISK


class SLATracker:
    """Classifies on read; never writes. The reconciler owns persistence."""

    def __init__(self, request_repo: RequestRepository, clock: SLAClock):
        self._requests = request_repo
        self._clock = clock

    async def check_status(self, request_id: str, now: datetime | None = None) -> RequestSLAView:
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise NotFound("ServiceRequest", request_id)
        return self._view(request, now or datetime.now(timezone.utc))

    async def list_breaches(self, now: datetime | None = None) -> list[RequestSLAView]:
        """Open requests past their deadline (or still flagged breached), most overdue first."""
        views = await self._active_views(now or datetime.now(timezone.utc))
        return sorted((v for v in views if v.is_breached), key=lambda v: v.seconds_remaining)

    async def list_by_urgency(self, now: datetime | None = None) -> list[RequestSLAView]:
        views = await self._active_views(now or datetime.now(timezone.utc))
        return sorted(views, key=lambda v: (-v.urgency_score, v.sla_deadline, v.request_id))

    async def _active_views(self, now: datetime) -> list[RequestSLAView]:
        requests = await self._requests.list_active()
        return [self._view(r, now) for r in requests if not is_terminal(r.status)]

    def _view(self, request: ServiceRequest, now: datetime) -> RequestSLAView:
        if is_terminal(request.status):
            current = request.sla_status
            score = 0
        else:
            current = self._clock.reclassify(request.sla_status, now, request.sla_deadline)
            score = urgency_score(
                request.urgency,
                current,
                percent_elapsed(request.submitted_at, request.sla_deadline, now),
            )
        return RequestSLAView(
            request_id=request.id,
            request_number=request.request_number,
            status=request.status,
            sla_deadline=request.sla_deadline,
            stored_sla_status=request.sla_status,
            current_sla_status=current,
            seconds_remaining=int((request.sla_deadline - now).total_seconds()),
            percent_elapsed=percent_elapsed(request.submitted_at, request.sla_deadline, now),
            urgency_score=score,
        )
