"""RoutingRule entity — condition set + provider target + selection strategy.

Conditions are an open set of ``attribute -> accepted values`` predicates.
Matching is case-insensitive; the value ``*`` accepts anything, including a
missing attribute. A rule with no conditions must be flagged ``catch_all``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from lexroute.domain.entities.provider import ProviderCandidate
from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.errors import ValidationError
from lexroute.domain.value_objects.enums import SelectionStrategy

ANY = "*"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalized(values: Any, field_name: str) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(f"{field_name} must be a string or a list of strings", {"field": field_name})
    out = set()
    for v in values:
        if not isinstance(v, str) or not v.strip():
            raise ValidationError(f"{field_name} contains an empty or non-string value", {"field": field_name})
        out.add(v.strip().lower())
    return frozenset(out)


def _optional_number(data: Mapping[str, Any], key: str, kind=float):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number", {"field": key})
    if kind is int and not float(value).is_integer():
        raise ValidationError(f"{key} must be an integer", {"field": key})
    return kind(value)


@dataclass(frozen=True)
class RoutingConditions:
    match: Mapping[str, frozenset[str]] = field(default_factory=dict)
    exclude_categories: frozenset[str] = field(default_factory=frozenset)
    min_amount: float | None = None
    max_amount: float | None = None
    catch_all: bool = False

    def request_types(self) -> frozenset[str]:
        """Request types the rule is limited to; ``*`` when unrestricted."""
        accepted = self.match.get("request_type")
        if self.catch_all or not accepted or ANY in accepted:
            return frozenset({ANY})
        return frozenset(accepted)

    def is_empty(self) -> bool:
        return (
            not self.match
            and not self.exclude_categories
            and self.min_amount is None
            and self.max_amount is None
        )

    def validate(self) -> None:
        if self.is_empty() and not self.catch_all:
            raise ValidationError("A rule needs at least one condition or the catch_all flag")
        if self.catch_all and not self.is_empty():
            raise ValidationError("A catch_all rule cannot carry conditions")
        for key, accepted in self.match.items():
            if not key or not key.strip():
                raise ValidationError("Condition keys must be non-empty")
            if not accepted:
                raise ValidationError(f"Condition '{key}' has no accepted values", {"field": key})
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValidationError("min_amount is greater than max_amount")

    def matches(self, attrs: RequestAttributes) -> bool:
        if self.catch_all:
            return True

        if self.exclude_categories and attrs.values_of("category") & self.exclude_categories:
            return False

        for key, accepted in self.match.items():
            if ANY in accepted:
                continue
            if not attrs.values_of(key) & accepted:
                return False

        if self.min_amount is not None or self.max_amount is not None:
            if attrs.amount is None:
                return False
            if self.min_amount is not None and attrs.amount < self.min_amount:
                return False
            if self.max_amount is not None and attrs.amount > self.max_amount:
                return False

        return True

    def to_storage(self) -> dict[str, Any]:
        return {
            "match": {k: sorted(v) for k, v in sorted(self.match.items())},
            "exclude_categories": sorted(self.exclude_categories),
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "catch_all": self.catch_all,
        }

    @classmethod
    def from_storage(cls, data: Mapping[str, Any] | None) -> "RoutingConditions":
        data = data or {}
        raw_match = data.get("match") or {}
        if not isinstance(raw_match, Mapping):
            raise ValidationError("conditions.match must be an object", {"field": "match"})
        return cls(
            match={
                str(k).strip().lower(): _normalized(v, f"match.{k}")
                for k, v in raw_match.items()
            },
            exclude_categories=_normalized(data.get("exclude_categories"), "exclude_categories"),
            min_amount=_optional_number(data, "min_amount"),
            max_amount=_optional_number(data, "max_amount"),
            catch_all=bool(data.get("catch_all", False)),
        )


@dataclass(frozen=True)
class TargetCriteria:
    """Which providers a rule's pool admits."""

    provider_ids: frozenset[str] = field(default_factory=frozenset)
    exclude_provider_ids: frozenset[str] = field(default_factory=frozenset)
    specializations: frozenset[str] = field(default_factory=frozenset)
    regions: frozenset[str] = field(default_factory=frozenset)
    require_certification: bool = False
    min_rating: float | None = None
    min_experience_years: int | None = None
    max_active_requests: int | None = None

    def validate(self) -> None:
        if self.min_rating is not None and not 0 <= self.min_rating <= 5:
            raise ValidationError("min_rating must be between 0 and 5", {"field": "min_rating"})
        if self.min_experience_years is not None and self.min_experience_years < 0:
            raise ValidationError("min_experience_years cannot be negative", {"field": "min_experience_years"})
        if self.max_active_requests is not None and self.max_active_requests < 1:
            raise ValidationError("max_active_requests must be at least 1", {"field": "max_active_requests"})
        overlap = self.provider_ids & self.exclude_provider_ids
        if overlap:
            raise ValidationError(
                "Providers cannot be both targeted and excluded",
                {"provider_ids": sorted(overlap)},
            )

    def admits(self, candidate: ProviderCandidate) -> bool:
        if not candidate.is_available():
            return False
        if candidate.provider_user_id in self.exclude_provider_ids:
            return False

        # An explicit provider list overrides every other criterion.
        if self.provider_ids:
            return candidate.provider_user_id in self.provider_ids

        if self.min_rating is not None and (candidate.rating or 0) < self.min_rating:
            return False
        if (
            self.max_active_requests is not None
            and candidate.active_request_count >= self.max_active_requests
        ):
            return False
        if self.specializations and not any(
            candidate.has_specialization(s) for s in self.specializations
        ):
            return False
        if self.regions and (candidate.region or "").strip().lower() not in self.regions:
            return False
        if self.require_certification and not candidate.is_certified:
            return False
        if (
            self.min_experience_years is not None
            and candidate.experience_years < self.min_experience_years
        ):
            return False
        return True

    def to_storage(self) -> dict[str, Any]:
        return {
            "provider_ids": sorted(self.provider_ids),
            "exclude_provider_ids": sorted(self.exclude_provider_ids),
            "specializations": sorted(self.specializations),
            "regions": sorted(self.regions),
            "require_certification": self.require_certification,
            "min_rating": self.min_rating,
            "min_experience_years": self.min_experience_years,
            "max_active_requests": self.max_active_requests,
        }

    @classmethod
    def from_storage(cls, data: Mapping[str, Any] | None) -> "TargetCriteria":
        data = data or {}

        def ids(key: str) -> frozenset[str]:
            raw = data.get(key) or []
            if isinstance(raw, str):
                raw = [raw]
            return frozenset(str(v) for v in raw)

        return cls(
            provider_ids=ids("provider_ids"),
            exclude_provider_ids=ids("exclude_provider_ids"),
            specializations=_normalized(data.get("specializations"), "specializations"),
            regions=_normalized(data.get("regions"), "regions"),
            require_certification=bool(data.get("require_certification", False)),
            min_rating=_optional_number(data, "min_rating"),
            min_experience_years=_optional_number(data, "min_experience_years", int),
            max_active_requests=_optional_number(data, "max_active_requests", int),
        )


@dataclass(frozen=True)
class RoutingRule:
    id: str
    name: str
    priority: int
    conditions: RoutingConditions
    target: TargetCriteria = field(default_factory=TargetCriteria)
    strategy: SelectionStrategy = SelectionStrategy.LOAD_BALANCED
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def validate(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Rule name cannot be empty", {"field": "name"})
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValidationError("priority must be an integer", {"field": "priority"})
        if not isinstance(self.strategy, SelectionStrategy):
            raise ValidationError("Unknown selection strategy", {"field": "strategy"})
        self.conditions.validate()
        self.target.validate()

    def matches(self, attrs: RequestAttributes) -> bool:
        """Condition check only; the active flag is the catalog's concern."""
        return self.conditions.matches(attrs)

    def evaluation_key(self) -> tuple:
        """Total order among rules: priority, then creation time, then id."""
        return (self.priority, self.created_at, self.id)

    def to_storage(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "priority": self.priority,
            "conditions": self.conditions.to_storage(),
            "target": self.target.to_storage(),
            "strategy": self.strategy.value,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_storage(cls, data: Mapping[str, Any]) -> "RoutingRule":
        try:
            strategy = SelectionStrategy(data.get("strategy") or SelectionStrategy.LOAD_BALANCED.value)
        except ValueError:
            raise ValidationError(
                f"Unknown selection strategy '{data.get('strategy')}'", {"field": "strategy"}
            ) from None
        created = data.get("created_at")
        updated = data.get("updated_at")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            priority=data["priority"],
            conditions=RoutingConditions.from_storage(data.get("conditions")),
            target=TargetCriteria.from_storage(data.get("target")),
            strategy=strategy,
            is_active=bool(data.get("is_active", True)),
            created_at=datetime.fromisoformat(created) if isinstance(created, str) else (created or _utcnow()),
            updated_at=datetime.fromisoformat(updated) if isinstance(updated, str) else (updated or _utcnow()),
        )
