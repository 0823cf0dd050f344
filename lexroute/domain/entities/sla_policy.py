"""SLAPolicy entity — an admin-managed deadline for one (request type, urgency) pair."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lexroute.domain.errors import ValidationError
from lexroute.domain.value_objects.enums import RequestType, Urgency


@dataclass(frozen=True)
class SLAPolicy:
    id: str
    name: str
    request_type: RequestType
    urgency: Urgency
    hours: int
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[RequestType, Urgency]:
        return (self.request_type, self.urgency)

    def validate(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Policy name cannot be empty", {"field": "name"})
        if not isinstance(self.request_type, RequestType):
            raise ValidationError("request_type is invalid", {"field": "request_type"})
        if not isinstance(self.urgency, Urgency):
            raise ValidationError("urgency is invalid", {"field": "urgency"})
        if isinstance(self.hours, bool) or not isinstance(self.hours, int) or self.hours <= 0:
            raise ValidationError("hours must be a positive integer", {"field": "hours"})
