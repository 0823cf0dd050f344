"""SLA endpoints — policy administration, per-request status, breach queues, manual cycle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, StrictInt

from lexroute.application.use_cases.sla_policies import SLAPolicyCatalog, SLAPolicyDraft
from lexroute.application.use_cases.sla_reconciler import SLAReconciler
from lexroute.application.use_cases.sla_tracking import SLATracker
from lexroute.domain.value_objects.enums import RequestType, Urgency
from lexroute.infrastructure.api.dependencies import (
    get_policy_catalog,
    get_sla_reconciler,
    get_sla_tracker,
)
from lexroute.infrastructure.api.serializers import serialize_policy, serialize_sla_view

router = APIRouter(prefix="/sla", tags=["sla"])


class PolicyBody(BaseModel):
    name: str
    request_type: RequestType
    urgency: Urgency
    hours: StrictInt
    is_active: bool = True


class PolicyUpdateBody(BaseModel):
    name: str | None = None
    hours: StrictInt | None = None
    is_active: bool | None = None


class ToggleBody(BaseModel):
    is_active: bool | None = None


# ── Policies ────────────────────────────────────────────────────────


@router.get("/policies")
async def list_policies(
    active_only: bool = False,
    catalog: SLAPolicyCatalog = Depends(get_policy_catalog),
):
    policies = await catalog.list_policies(active_only=active_only)
    return {"total": len(policies), "policies": [serialize_policy(p) for p in policies]}


@router.post("/policies", status_code=201)
async def create_policy(body: PolicyBody, catalog: SLAPolicyCatalog = Depends(get_policy_catalog)):
    policy = await catalog.create(
        SLAPolicyDraft(
            name=body.name,
            request_type=body.request_type,
            urgency=body.urgency,
            hours=body.hours,
            is_active=body.is_active,
        )
    )
    return serialize_policy(policy)


@router.get("/policies/{policy_id}")
async def get_policy(policy_id: str, catalog: SLAPolicyCatalog = Depends(get_policy_catalog)):
    return serialize_policy(await catalog.get(policy_id))


@router.patch("/policies/{policy_id}")
async def update_policy(
    policy_id: str,
    body: PolicyUpdateBody,
    catalog: SLAPolicyCatalog = Depends(get_policy_catalog),
):
    policy = await catalog.update(policy_id, body.model_dump(exclude_unset=True))
    return serialize_policy(policy)


@router.delete("/policies/{policy_id}", status_code=204)
async def delete_policy(policy_id: str, catalog: SLAPolicyCatalog = Depends(get_policy_catalog)):
    await catalog.delete(policy_id)
    return Response(status_code=204)


@router.post("/policies/{policy_id}/toggle")
async def toggle_policy(
    policy_id: str,
    body: ToggleBody | None = None,
    catalog: SLAPolicyCatalog = Depends(get_policy_catalog),
):
    policy = await catalog.set_active(policy_id, body.is_active if body else None)
    return serialize_policy(policy)


# ── Tracking ────────────────────────────────────────────────────────


@router.get("/requests/{request_id}")
async def request_sla_status(request_id: str, tracker: SLATracker = Depends(get_sla_tracker)):
    return serialize_sla_view(await tracker.check_status(request_id))


@router.get("/breaches")
async def list_breaches(tracker: SLATracker = Depends(get_sla_tracker)):
    views = await tracker.list_breaches()
    return {"total": len(views), "requests": [serialize_sla_view(v) for v in views]}


@router.get("/queue")
async def urgency_queue(tracker: SLATracker = Depends(get_sla_tracker)):
    """Open requests, most urgent first."""
    views = await tracker.list_by_urgency()
    return {"total": len(views), "requests": [serialize_sla_view(v) for v in views]}


# ── Cycle ───────────────────────────────────────────────────────────


@router.post("/run")
async def run_sla_cycle(reconciler: SLAReconciler = Depends(get_sla_reconciler)):
    """Run one cycle now. Skipped if a scheduled cycle is in flight."""
    report = await reconciler.run_cycle()
    return {
        "executed_at": report.executed_at.isoformat(),
        "skipped": report.skipped,
        "checked": report.checked,
        "updated_count": report.updated_count,
        "breaches": report.breaches,
        "at_risk": report.at_risk,
        "errors": report.errors,
    }
