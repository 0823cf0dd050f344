"""Routing endpoints — rule administration, assignment, workload and stats."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field, StrictInt

from lexroute.application.use_cases.assign_request import AssignmentEngine
from lexroute.application.use_cases.routing_rules import RoutingRuleCatalog, RuleDraft
from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.entities.routing_rule import (
    RoutingConditions,
    RoutingRule,
    TargetCriteria,
)
from lexroute.domain.value_objects.enums import SelectionStrategy
from lexroute.infrastructure.api.dependencies import (
    get_assignment_engine,
    get_rule_catalog,
)
from lexroute.infrastructure.api.serializers import serialize_result, serialize_rule

router = APIRouter(prefix="/routing", tags=["routing"])

# ── Request schemas ─────────────────────────────────────────────────


class RuleBody(BaseModel):
    name: str
    priority: StrictInt
    conditions: dict[str, Any] = Field(default_factory=dict)
    target: dict[str, Any] = Field(default_factory=dict)
    strategy: SelectionStrategy = SelectionStrategy.LOAD_BALANCED
    is_active: bool = True


class RuleUpdateBody(BaseModel):
    name: str | None = None
    priority: StrictInt | None = None
    conditions: dict[str, Any] | None = None
    target: dict[str, Any] | None = None
    strategy: SelectionStrategy | None = None
    is_active: bool | None = None


class ToggleBody(BaseModel):
    is_active: bool | None = None


class DryRunBody(BaseModel):
    rule: RuleBody
    sample: dict[str, Any]


class ReassignBody(BaseModel):
    provider_id: str
    reason: str | None = None
    recompute_deadline: bool = False


def _draft(body: RuleBody) -> RuleDraft:
    return RuleDraft(
        name=body.name,
        priority=body.priority,
        conditions=RoutingConditions.from_storage(body.conditions),
        target=TargetCriteria.from_storage(body.target),
        strategy=body.strategy,
        is_active=body.is_active,
    )


# ── Rules ───────────────────────────────────────────────────────────


@router.get("/rules")
async def list_rules(
    active_only: bool = False,
    catalog: RoutingRuleCatalog = Depends(get_rule_catalog),
):
    rules = await catalog.list_rules(active_only=active_only)
    return {"total": len(rules), "rules": [serialize_rule(r) for r in rules]}


@router.post("/rules", status_code=201)
async def create_rule(body: RuleBody, catalog: RoutingRuleCatalog = Depends(get_rule_catalog)):
    rule = await catalog.create(_draft(body))
    return serialize_rule(rule)


@router.post("/rules/test")
async def dry_run_rule(body: DryRunBody):
    """Test an unsaved rule against a sample request."""
    draft = _draft(body.rule)
    rule = RoutingRule(
        id=f"dry-run-{uuid.uuid4()}",
        name=draft.name,
        priority=draft.priority,
        conditions=draft.conditions,
        target=draft.target,
        strategy=draft.strategy,
        is_active=draft.is_active,
    )
    rule.validate()
    matches = RoutingRuleCatalog.test(rule, RequestAttributes.from_mapping(body.sample))
    return {"matches": matches}


@router.post("/rules/match")
async def find_rule(
    sample: dict[str, Any],
    catalog: RoutingRuleCatalog = Depends(get_rule_catalog),
):
    """Which rule would govern a request with these attributes?"""
    rule = await catalog.find_applicable_rule(RequestAttributes.from_mapping(sample))
    return {"rule": serialize_rule(rule) if rule else None}


@router.get("/rules/{rule_id}")
async def get_rule(rule_id: str, catalog: RoutingRuleCatalog = Depends(get_rule_catalog)):
    return serialize_rule(await catalog.get(rule_id))


@router.patch("/rules/{rule_id}")
async def update_rule(
    rule_id: str,
    body: RuleUpdateBody,
    catalog: RoutingRuleCatalog = Depends(get_rule_catalog),
):
    changes = body.model_dump(exclude_unset=True)
    if "conditions" in changes:
        changes["conditions"] = RoutingConditions.from_storage(changes["conditions"])
    if "target" in changes:
        changes["target"] = TargetCriteria.from_storage(changes["target"])
    rule = await catalog.update(rule_id, changes)
    return serialize_rule(rule)


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, catalog: RoutingRuleCatalog = Depends(get_rule_catalog)):
    await catalog.delete(rule_id)
    return Response(status_code=204)


@router.post("/rules/{rule_id}/toggle")
async def toggle_rule(
    rule_id: str,
    body: ToggleBody | None = None,
    catalog: RoutingRuleCatalog = Depends(get_rule_catalog),
):
    rule = await catalog.set_active(rule_id, body.is_active if body else None)
    return serialize_rule(rule)


@router.post("/rules/{rule_id}/test")
async def test_rule(
    rule_id: str,
    sample: dict[str, Any],
    catalog: RoutingRuleCatalog = Depends(get_rule_catalog),
):
    matches = await catalog.test_rule_by_id(rule_id, RequestAttributes.from_mapping(sample))
    return {"rule_id": rule_id, "matches": matches}


# ── Assignment ──────────────────────────────────────────────────────


@router.post("/requests/{request_id}/auto-assign")
async def auto_assign(
    request_id: str,
    engine: AssignmentEngine = Depends(get_assignment_engine),
):
    result = await engine.auto_assign(request_id)
    return serialize_result(result)


@router.post("/requests/{request_id}/reassign")
async def reassign(
    request_id: str,
    body: ReassignBody,
    engine: AssignmentEngine = Depends(get_assignment_engine),
):
    result = await engine.reassign(
        request_id,
        body.provider_id,
        reason=body.reason,
        recompute_deadline=body.recompute_deadline,
    )
    return serialize_result(result)


# ── Read models ─────────────────────────────────────────────────────


@router.get("/providers/{provider_id}/workload")
async def provider_workload(
    provider_id: str,
    engine: AssignmentEngine = Depends(get_assignment_engine),
):
    w = await engine.get_provider_workload(provider_id)
    return {
        "provider_id": w.provider_id,
        "active_request_count": w.active_request_count,
        "completed_today_count": w.completed_today_count,
    }


@router.get("/stats")
async def routing_stats(engine: AssignmentEngine = Depends(get_assignment_engine)):
    s = await engine.get_routing_stats()
    return {
        "total_rules": s.total_rules,
        "active_rules": s.active_rules,
        "rules_by_strategy": s.rules_by_strategy,
        "rules_by_request_type": s.rules_by_request_type,
        "total_attempts": s.total_attempts,
        "successful_attempts": s.successful_attempts,
        "assignments_by_rule": s.assignments_by_rule,
        "assignments_by_provider": s.assignments_by_provider,
        "failures_by_reason": s.failures_by_reason,
    }
