"""ServiceRequest entity — an immutable snapshot of one client request.

All five request kinds share this shape; ``request_type`` is the explicit
discriminant that selects the transition table and the SLA row.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping

from lexroute.domain.errors import ValidationError
from lexroute.domain.value_objects.enums import (
    RequestStatus,
    RequestType,
    SLAStatus,
    Urgency,
)

# Statuses in which a provider must be attached to the request.
PROVIDER_BOUND_STATUSES = frozenset(
    {
        RequestStatus.ASSIGNED,
        RequestStatus.IN_PROGRESS,
        RequestStatus.QUOTE_SENT,
        RequestStatus.SCHEDULED,
        RequestStatus.RESCHEDULED,
    }
)


@dataclass(frozen=True)
class RequestAttributes:
    """The subset of a request that routing rules are evaluated against."""

    request_type: RequestType
    category: str | None = None
    urgency: Urgency | None = None
    region: str | None = None
    subscriber_tier: str | None = None
    amount: float | None = None
    specializations: frozenset[str] = field(default_factory=frozenset)
    extra: Mapping[str, str] = field(default_factory=dict)

    def values_of(self, key: str) -> frozenset[str]:
        """Lower-cased values of an attribute; empty when the request lacks it."""
        if key == "specializations":
            return frozenset(s.strip().lower() for s in self.specializations if s)

        if key in ("request_type", "urgency"):
            raw = getattr(self, key)
            raw = raw.value if raw is not None else None
        elif key in ("category", "region", "subscriber_tier"):
            raw = getattr(self, key)
        else:
            raw = self.extra.get(key)

        if raw is None or not str(raw).strip():
            return frozenset()
        return frozenset({str(raw).strip().lower()})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RequestAttributes":
        """Build attributes from loose input (API payloads, dry-run samples)."""
        raw_type = data.get("request_type")
        if not raw_type:
            raise ValidationError("request_type is required for routing", {"field": "request_type"})
        try:
            request_type = RequestType(str(raw_type).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown request_type '{raw_type}'", {"field": "request_type"}
            ) from None

        urgency = None
        if data.get("urgency"):
            try:
                urgency = Urgency(str(data["urgency"]).lower())
            except ValueError:
                raise ValidationError(
                    f"Unknown urgency '{data['urgency']}'", {"field": "urgency"}
                ) from None

        amount = data.get("amount")
        known = {
            "request_type", "category", "urgency", "region",
            "subscriber_tier", "amount", "specializations",
        }
        return cls(
            request_type=request_type,
            category=data.get("category"),
            urgency=urgency,
            region=data.get("region"),
            subscriber_tier=data.get("subscriber_tier"),
            amount=float(amount) if amount is not None else None,
            specializations=frozenset(data.get("specializations") or ()),
            extra={k: str(v) for k, v in data.items() if k not in known and v is not None},
        )


@dataclass(frozen=True)
class ServiceRequest:
    id: str
    request_number: str
    subscriber_id: str
    request_type: RequestType
    urgency: Urgency
    status: RequestStatus
    submitted_at: datetime
    sla_deadline: datetime
    sla_status: SLAStatus = SLAStatus.ON_TRACK
    assigned_provider_id: str | None = None
    category: str | None = None
    region: str | None = None
    subscriber_tier: str | None = None
    amount: float | None = None
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    specializations: frozenset[str] = field(default_factory=frozenset)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_assigned(self) -> bool:
        return self.assigned_provider_id is not None and self.status != RequestStatus.PENDING

    def attributes(self) -> RequestAttributes:
        return RequestAttributes(
            request_type=self.request_type,
            category=self.category,
            urgency=self.urgency,
            region=self.region,
            subscriber_tier=self.subscriber_tier,
            amount=self.amount,
            specializations=self.specializations,
        )

    def assigned_to(self, provider_id: str, now: datetime) -> "ServiceRequest":
        return replace(
            self,
            assigned_provider_id=provider_id,
            status=RequestStatus.ASSIGNED,
            updated_at=now,
        )


@dataclass(frozen=True)
class NewRequest:
    """Input for creating a request; the id and number come from the caller."""

    id: str
    request_number: str
    subscriber_id: str
    request_type: RequestType
    urgency: Urgency = Urgency.NORMAL
    category: str | None = None
    region: str | None = None
    subscriber_tier: str | None = None
    amount: float | None = None
    specializations: frozenset[str] = field(default_factory=frozenset)
