"""RequestState — per-request-type status transition tables.

Pure functions of (request type, current status, target status); no I/O and
no clock. Time-dependent guards ("cannot schedule in the past") belong to the
caller and run before ``transition``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.errors import InvalidTransition
from lexroute.domain.value_objects.enums import RequestStatus as S
from lexroute.domain.value_objects.enums import RequestType

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.CLOSED})
ACTIVE_STATUSES = frozenset(set(S) - TERMINAL_STATUSES)
FINISHED_STATUSES = frozenset({S.COMPLETED, S.CLOSED})

_CALL = {
    S.PENDING: {S.ASSIGNED, S.CANCELLED},
    S.ASSIGNED: {S.SCHEDULED, S.CANCELLED},
    S.SCHEDULED: {S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW, S.RESCHEDULED},
    S.IN_PROGRESS: {S.COMPLETED},
    S.NO_SHOW: {S.RESCHEDULED},
    S.RESCHEDULED: {S.SCHEDULED, S.RESCHEDULED, S.CANCELLED},
}

_CONSULTATION = {
    S.PENDING: {S.ASSIGNED, S.CANCELLED},
    S.ASSIGNED: {S.SCHEDULED, S.IN_PROGRESS, S.CANCELLED},
    S.SCHEDULED: {S.IN_PROGRESS, S.RESCHEDULED, S.CANCELLED},
    S.RESCHEDULED: {S.SCHEDULED, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.DISPUTED, S.CANCELLED},
    S.DISPUTED: {S.IN_PROGRESS, S.CLOSED},
}

# Legal opinions and generic service requests share the quote workflow.
_QUOTED_WORK = {
    S.PENDING: {S.ASSIGNED, S.CANCELLED},
    S.ASSIGNED: {S.QUOTE_SENT, S.IN_PROGRESS, S.CANCELLED},
    S.QUOTE_SENT: {S.IN_PROGRESS, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.DISPUTED},
    S.DISPUTED: {S.IN_PROGRESS, S.CLOSED},
}

_LITIGATION = {
    S.PENDING: {S.ASSIGNED, S.CANCELLED},
    S.ASSIGNED: {S.QUOTE_SENT, S.IN_PROGRESS, S.CANCELLED},
    S.QUOTE_SENT: {S.IN_PROGRESS, S.CANCELLED},
    S.IN_PROGRESS: {S.SCHEDULED, S.DISPUTED, S.CLOSED},
    S.SCHEDULED: {S.IN_PROGRESS, S.RESCHEDULED},
    S.RESCHEDULED: {S.SCHEDULED},
    S.DISPUTED: {S.IN_PROGRESS, S.CLOSED},
}

TRANSITIONS: dict[RequestType, dict[S, frozenset[S]]] = {
    RequestType.CALL: {k: frozenset(v) for k, v in _CALL.items()},
    RequestType.CONSULTATION: {k: frozenset(v) for k, v in _CONSULTATION.items()},
    RequestType.LEGAL_OPINION: {k: frozenset(v) for k, v in _QUOTED_WORK.items()},
    RequestType.SERVICE: {k: frozenset(v) for k, v in _QUOTED_WORK.items()},
    RequestType.LITIGATION: {k: frozenset(v) for k, v in _LITIGATION.items()},
}


def next_statuses(request_type: RequestType, current: S) -> frozenset[S]:
    return TRANSITIONS[request_type].get(current, frozenset())


def can_transition(request_type: RequestType, current: S, target: S) -> bool:
    return target in next_statuses(request_type, current)


def transition(request_type: RequestType, current: S, target: S) -> S:
    """Validate one status change and return the new status.

    Raises:
        InvalidTransition: if ``target`` is not reachable from ``current``.
    """
    if not can_transition(request_type, current, target):
        raise InvalidTransition(current, target, request_type)
    return target


def is_terminal(status: S) -> bool:
    return status in TERMINAL_STATUSES


def can_modify(status: S) -> bool:
    """Whether non-status fields (call link, schedule notes) may still change."""
    return not is_terminal(status) and status != S.IN_PROGRESS


def apply_transition(
    request: ServiceRequest,
    target: S,
    now: datetime,
    **changes,
) -> ServiceRequest:
    """Return the next snapshot of ``request`` after moving it to ``target``."""
    new_status = transition(request.request_type, request.status, target)
    if new_status in FINISHED_STATUSES:
        changes.setdefault("completed_at", now)
    return replace(request, status=new_status, updated_at=now, **changes)
