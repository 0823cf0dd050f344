"""Assignment entities — the outcome of routing a request to a provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from lexroute.domain.value_objects.enums import AssignmentFailure, SelectionStrategy


@dataclass(frozen=True)
class AssignmentResult:
    """One per assignment attempt; never mutated after creation."""

    success: bool
    request_id: str
    timestamp: datetime
    provider_id: str | None = None
    rule_id: str | None = None
    reason: AssignmentFailure | None = None
    strategy: SelectionStrategy | None = None
    already_assigned: bool = False
    note: str | None = None

    @classmethod
    def assigned(
        cls,
        request_id: str,
        provider_id: str,
        timestamp: datetime,
        rule_id: str | None = None,
        strategy: SelectionStrategy | None = None,
        already_assigned: bool = False,
        note: str | None = None,
    ) -> "AssignmentResult":
        return cls(
            success=True,
            request_id=request_id,
            timestamp=timestamp,
            provider_id=provider_id,
            rule_id=rule_id,
            strategy=strategy,
            already_assigned=already_assigned,
            note=note,
        )

    @classmethod
    def failed(
        cls,
        request_id: str,
        reason: AssignmentFailure,
        timestamp: datetime,
        rule_id: str | None = None,
        strategy: SelectionStrategy | None = None,
    ) -> "AssignmentResult":
        return cls(
            success=False,
            request_id=request_id,
            timestamp=timestamp,
            rule_id=rule_id,
            reason=reason,
            strategy=strategy,
        )


@dataclass(frozen=True)
class RoutingStats:
    total_rules: int
    active_rules: int
    rules_by_strategy: dict[str, int] = field(default_factory=dict)
    rules_by_request_type: dict[str, int] = field(default_factory=dict)
    total_attempts: int = 0
    successful_attempts: int = 0
    assignments_by_rule: dict[str, int] = field(default_factory=dict)
    assignments_by_provider: dict[str, int] = field(default_factory=dict)
    failures_by_reason: dict[str, int] = field(default_factory=dict)
