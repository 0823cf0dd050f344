"""Domain errors raised by the routing core.

Soft assignment outcomes (no rule matched, no provider available) are not
errors: they travel as data inside ``AssignmentResult``.
"""

from __future__ import annotations

from typing import Any


class RoutingError(Exception):
    """Base class for every error the routing core raises."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(RoutingError, ValueError):
    """Malformed rule or request attributes."""


class NotFound(RoutingError):
    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} '{resource_id}' not found",
            {"resource": resource, "id": resource_id},
        )


class InvalidTransition(RoutingError):
    """Status change outside the request type's transition table."""

    def __init__(self, current, target, request_type=None):
        self.current = current
        self.target = target
        self.request_type = request_type
        kind = f"{request_type.value} " if request_type is not None else ""
        super().__init__(
            f"Invalid {kind}transition {current.value} → {target.value}",
            {"current": current.value, "target": target.value},
        )


class ConcurrencyConflict(RoutingError):
    """A conditional write lost its precondition and could not be resolved."""


class InvalidProvider(RoutingError):
    def __init__(self, provider_id: str, reason: str):
        self.provider_id = provider_id
        self.reason = reason
        super().__init__(
            f"Provider '{provider_id}' cannot take requests: {reason}",
            {"provider_id": provider_id, "reason": reason},
        )
