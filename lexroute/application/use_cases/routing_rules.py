"""RoutingRuleCatalog — admin CRUD over routing rules plus rule lookup."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from lexroute.application.ports.rule_repo import RoutingRuleRepository
from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.entities.routing_rule import (
    RoutingConditions,
    RoutingRule,
    TargetCriteria,
)
from lexroute.domain.errors import NotFound, ValidationError
from lexroute.domain.policies.rule_matching import find_applicable_rule
from lexroute.domain.value_objects.enums import SelectionStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleDraft:
    """Fields an administrator supplies when creating a rule."""

    name: str
    priority: int
    conditions: RoutingConditions
    target: TargetCriteria
    strategy: SelectionStrategy = SelectionStrategy.LOAD_BALANCED
    is_active: bool = True


_UPDATABLE = frozenset({"name", "priority", "conditions", "target", "strategy", "is_active"})


class RoutingRuleCatalog:
    """Ordered, mutable rule set. Errors propagate: this is admin-facing."""

    def __init__(self, rule_repo: RoutingRuleRepository):
        self._rules = rule_repo

    async def create(self, draft: RuleDraft, now: datetime | None = None) -> RoutingRule:
        now = now or datetime.now(timezone.utc)
        rule = RoutingRule(
            id=str(uuid.uuid4()),
            name=draft.name.strip() if isinstance(draft.name, str) else draft.name,
            priority=draft.priority,
            conditions=draft.conditions,
            target=draft.target,
            strategy=draft.strategy,
            is_active=draft.is_active,
            created_at=now,
            updated_at=now,
        )
        rule.validate()
        saved = await self._rules.add(rule)
        logger.info("Routing rule %s (%s) created with priority %d", saved.id, saved.name, saved.priority)
        return saved

    async def get(self, rule_id: str) -> RoutingRule:
        rule = await self._rules.get_by_id(rule_id)
        if rule is None:
            raise NotFound("RoutingRule", rule_id)
        return rule

    async def list_rules(self, active_only: bool = False) -> list[RoutingRule]:
        rules = await self._rules.list_all()
        if active_only:
            rules = [r for r in rules if r.is_active]
        return sorted(rules, key=RoutingRule.evaluation_key)

    async def update(
        self, rule_id: str, changes: Mapping[str, Any], now: datetime | None = None
    ) -> RoutingRule:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = await self.get(rule_id)
        updated = replace(current, updated_at=now or datetime.now(timezone.utc), **dict(changes))
        updated.validate()
        saved = await self._rules.update(updated)
        logger.info("Routing rule %s updated: %s", rule_id, ", ".join(sorted(changes)))
        return saved

    async def delete(self, rule_id: str) -> None:
        if not await self._rules.delete(rule_id):
            raise NotFound("RoutingRule", rule_id)
        logger.info("Routing rule %s deleted", rule_id)

    async def set_active(
        self, rule_id: str, active: bool | None = None, now: datetime | None = None
    ) -> RoutingRule:
        """Set the active flag, or flip it when ``active`` is None."""
        current = await self.get(rule_id)
        target = (not current.is_active) if active is None else active
        return await self.update(rule_id, {"is_active": target}, now=now)

    @staticmethod
    def test(rule: RoutingRule, sample: RequestAttributes) -> bool:
        """Dry run: does ``rule`` match ``sample``? No side effects."""
        return rule.matches(sample)

    async def test_rule_by_id(self, rule_id: str, sample: RequestAttributes) -> bool:
        return self.test(await self.get(rule_id), sample)

    async def find_applicable_rule(self, attrs: RequestAttributes) -> RoutingRule | None:
        if not isinstance(attrs, RequestAttributes) or attrs.request_type is None:
            raise ValidationError("request_type is required for routing", {"field": "request_type"})
        rules = await self._rules.list_all()
        rule = find_applicable_rule(rules, attrs)
        if rule is None:
            logger.info(
                "No active routing rule matches %s request (category=%s, urgency=%s)",
                attrs.request_type.value, attrs.category,
                attrs.urgency.value if attrs.urgency else None,
            )
        return rule
