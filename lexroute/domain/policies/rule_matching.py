"""Rule matching — pick the routing rule that governs a request."""

from __future__ import annotations

from typing import Iterable

from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.entities.routing_rule import RoutingRule


def matching_rules(
    rules: Iterable[RoutingRule], attrs: RequestAttributes
) -> list[RoutingRule]:
    """Active rules whose conditions all hold, in evaluation order."""
    matched = [r for r in rules if r.is_active and r.matches(attrs)]
    return sorted(matched, key=RoutingRule.evaluation_key)


def find_applicable_rule(
    rules: Iterable[RoutingRule], attrs: RequestAttributes
) -> RoutingRule | None:
    """Pure function: the first matching active rule, or None.

    Order is (priority ASC, created_at ASC, id ASC), so two rules sharing a
    priority always resolve the same way regardless of storage order.
    """
    matched = matching_rules(rules, attrs)
    return matched[0] if matched else None
