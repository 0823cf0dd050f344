"""Notification event — a structured outcome handed to the notification sink."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.value_objects.enums import NotificationKind


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    request_id: str
    request_number: str
    request_type: str
    subscriber_id: str
    provider_id: str | None
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_request(
        cls,
        kind: NotificationKind,
        request: ServiceRequest,
        occurred_at: datetime,
        provider_id: str | None = None,
        **details: Any,
    ) -> "NotificationEvent":
        return cls(
            kind=kind,
            request_id=request.id,
            request_number=request.request_number,
            request_type=request.request_type.value,
            subscriber_id=request.subscriber_id,
            provider_id=provider_id if provider_id is not None else request.assigned_provider_id,
            occurred_at=occurred_at,
            details=details,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "request_number": self.request_number,
            "request_type": self.request_type,
            "subscriber_id": self.subscriber_id,
            "provider_id": self.provider_id,
            "occurred_at": self.occurred_at.isoformat(),
            "details": self.details,
        }
