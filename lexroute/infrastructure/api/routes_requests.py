"""Request lifecycle endpoints — create, then drive status changes."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from lexroute.adapters.persistence.repositories import SqlRequestRepository
from lexroute.application.use_cases.request_lifecycle import RequestLifecycleService
from lexroute.domain.entities.request import NewRequest
from lexroute.domain.errors import NotFound
from lexroute.domain.value_objects.enums import RequestType, Urgency
from lexroute.infrastructure.api.dependencies import (
    get_lifecycle_service,
    get_request_repo,
)
from lexroute.infrastructure.api.serializers import serialize_request, serialize_result

router = APIRouter(prefix="/requests", tags=["requests"])

# ── Request schemas ─────────────────────────────────────────────────


class CreateRequestBody(BaseModel):
    subscriber_id: str
    request_type: RequestType
    urgency: Urgency = Urgency.NORMAL
    request_number: str | None = None
    category: str | None = None
    region: str | None = None
    subscriber_tier: str | None = None
    amount: float | None = Field(default=None, ge=0)
    specializations: list[str] = Field(default_factory=list)


class AssignBody(BaseModel):
    provider_id: str


class ScheduleBody(BaseModel):
    scheduled_at: datetime


def _request_number(request_type: RequestType) -> str:
    return f"{request_type.value[:3].upper()}-{uuid.uuid4().hex[:10].upper()}"


@router.post("", status_code=201)
async def create_request(
    body: CreateRequestBody,
    service: RequestLifecycleService = Depends(get_lifecycle_service),
):
    """Create a pending request and try to auto-assign it."""
    outcome = await service.create_request(
        NewRequest(
            id=str(uuid.uuid4()),
            request_number=body.request_number or _request_number(body.request_type),
            subscriber_id=body.subscriber_id,
            request_type=body.request_type,
            urgency=body.urgency,
            category=body.category,
            region=body.region,
            subscriber_tier=body.subscriber_tier,
            amount=body.amount,
            specializations=frozenset(body.specializations),
        )
    )
    return {
        "request": serialize_request(outcome.request),
        "assignment": serialize_result(outcome.assignment) if outcome.assignment else None,
    }


@router.get("/{request_id}")
async def get_request(
    request_id: str, repo: SqlRequestRepository = Depends(get_request_repo)
):
    request = await repo.get_by_id(request_id)
    if request is None:
        raise NotFound("ServiceRequest", request_id)
    return serialize_request(request)


@router.post("/{request_id}/assign")
async def assign_request(
    request_id: str,
    body: AssignBody,
    service: RequestLifecycleService = Depends(get_lifecycle_service),
):
    return serialize_request(await service.assign(request_id, body.provider_id))


@router.post("/{request_id}/schedule")
async def schedule_request(
    request_id: str,
    body: ScheduleBody,
    service: RequestLifecycleService = Depends(get_lifecycle_service),
):
    return serialize_request(await service.schedule(request_id, body.scheduled_at))


@router.post("/{request_id}/reschedule")
async def reschedule_request(
    request_id: str,
    body: ScheduleBody,
    service: RequestLifecycleService = Depends(get_lifecycle_service),
):
    return serialize_request(await service.reschedule(request_id, body.scheduled_at))


@router.post("/{request_id}/start")
async def start_request(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.start(request_id))


@router.post("/{request_id}/end")
async def end_request(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.end(request_id))


@router.post("/{request_id}/cancel")
async def cancel_request(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.cancel(request_id))


@router.post("/{request_id}/no-show")
async def mark_no_show(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.mark_no_show(request_id))


@router.post("/{request_id}/send-quote")
async def send_quote(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.send_quote(request_id))


@router.post("/{request_id}/dispute")
async def dispute_request(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.dispute(request_id))


@router.post("/{request_id}/close")
async def close_request(
    request_id: str, service: RequestLifecycleService = Depends(get_lifecycle_service)
):
    return serialize_request(await service.close(request_id))
