"""Domain objects → API response dicts."""

from __future__ import annotations

from lexroute.application.use_cases.sla_tracking import RequestSLAView
from lexroute.domain.entities.assignment import AssignmentResult
from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.entities.routing_rule import RoutingRule
from lexroute.domain.entities.sla_policy import SLAPolicy


def _iso(value):
    return value.isoformat() if value else None


def serialize_request(r: ServiceRequest) -> dict:
    return {
        "id": r.id,
        "request_number": r.request_number,
        "subscriber_id": r.subscriber_id,
        "request_type": r.request_type.value,
        "urgency": r.urgency.value,
        "status": r.status.value,
        "assigned_provider_id": r.assigned_provider_id,
        "category": r.category,
        "region": r.region,
        "subscriber_tier": r.subscriber_tier,
        "amount": r.amount,
        "specializations": sorted(r.specializations),
        "submitted_at": _iso(r.submitted_at),
        "sla_deadline": _iso(r.sla_deadline),
        "sla_status": r.sla_status.value,
        "scheduled_at": _iso(r.scheduled_at),
        "completed_at": _iso(r.completed_at),
        "created_at": _iso(r.created_at),
        "updated_at": _iso(r.updated_at),
    }


def serialize_result(a: AssignmentResult) -> dict:
    return {
        "success": a.success,
        "request_id": a.request_id,
        "provider_id": a.provider_id,
        "rule_id": a.rule_id,
        "reason": a.reason.value if a.reason else None,
        "strategy": a.strategy.value if a.strategy else None,
        "already_assigned": a.already_assigned,
        "note": a.note,
        "timestamp": _iso(a.timestamp),
    }


def serialize_rule(rule: RoutingRule) -> dict:
    return rule.to_storage()


def serialize_policy(p: SLAPolicy) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "request_type": p.request_type.value,
        "urgency": p.urgency.value,
        "hours": p.hours,
        "is_active": p.is_active,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }


def serialize_sla_view(v: RequestSLAView) -> dict:
    return {
        "request_id": v.request_id,
        "request_number": v.request_number,
        "status": v.status.value,
        "sla_deadline": _iso(v.sla_deadline),
        "sla_status": v.current_sla_status.value,
        "stored_sla_status": v.stored_sla_status.value,
        "is_breached": v.is_breached,
        "is_at_risk": v.is_at_risk,
        "seconds_remaining": v.seconds_remaining,
        "percent_elapsed": v.percent_elapsed,
        "urgency_score": v.urgency_score,
    }
