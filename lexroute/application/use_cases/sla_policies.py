"""SLAPolicyCatalog — admin-managed SLA hours layered over the configured table."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from lexroute.application.ports.sla_policy_repo import SLAPolicyRepository
from lexroute.domain.entities.sla_policy import SLAPolicy
from lexroute.domain.errors import NotFound, ValidationError
from lexroute.domain.policies.sla_clock import SLAClock
from lexroute.domain.value_objects.enums import RequestType, Urgency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SLAPolicyDraft:
    name: str
    request_type: RequestType
    urgency: Urgency
    hours: int
    is_active: bool = True


_UPDATABLE = frozenset({"name", "hours", "is_active"})


class SLAPolicyCatalog:
    """At most one policy per (request type, urgency).

    Active policies override ``base_clock``'s hours; inactive ones are kept
    but ignored. Deleting a policy falls back to the configured hours.
    """

    def __init__(self, policy_repo: SLAPolicyRepository, base_clock: SLAClock):
        self._policies = policy_repo
        self._base = base_clock

    async def create(self, draft: SLAPolicyDraft, now: datetime | None = None) -> SLAPolicy:
        now = now or datetime.now(timezone.utc)
        policy = SLAPolicy(
            id=str(uuid.uuid4()),
            name=draft.name.strip() if isinstance(draft.name, str) else draft.name,
            request_type=draft.request_type,
            urgency=draft.urgency,
            hours=draft.hours,
            is_active=draft.is_active,
            created_at=now,
            updated_at=now,
        )
        policy.validate()

        existing = await self._policies.list_all()
        if any(p.key == policy.key for p in existing):
            raise ValidationError(
                f"A policy for {policy.request_type.value}/{policy.urgency.value} already exists",
                {"request_type": policy.request_type.value, "urgency": policy.urgency.value},
            )

        saved = await self._policies.add(policy)
        logger.info(
            "SLA policy %s: %s/%s = %dh",
            saved.id, saved.request_type.value, saved.urgency.value, saved.hours,
        )
        return saved

    async def get(self, policy_id: str) -> SLAPolicy:
        policy = await self._policies.get_by_id(policy_id)
        if policy is None:
            raise NotFound("SLAPolicy", policy_id)
        return policy

    async def list_policies(self, active_only: bool = False) -> list[SLAPolicy]:
        policies = await self._policies.list_all()
        if active_only:
            policies = [p for p in policies if p.is_active]
        return sorted(policies, key=lambda p: (p.request_type.value, p.urgency.value))

    async def update(
        self, policy_id: str, changes: Mapping[str, Any], now: datetime | None = None
    ) -> SLAPolicy:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = await self.get(policy_id)
        updated = replace(current, updated_at=now or datetime.now(timezone.utc), **dict(changes))
        updated.validate()
        saved = await self._policies.update(updated)
        logger.info("SLA policy %s updated: %s", policy_id, ", ".join(sorted(changes)))
        return saved

    async def delete(self, policy_id: str) -> None:
        if not await self._policies.delete(policy_id):
            raise NotFound("SLAPolicy", policy_id)
        logger.info("SLA policy %s deleted", policy_id)

    async def set_active(
        self, policy_id: str, active: bool | None = None, now: datetime | None = None
    ) -> SLAPolicy:
        current = await self.get(policy_id)
        target = (not current.is_active) if active is None else active
        return await self.update(policy_id, {"is_active": target}, now=now)

    async def current_clock(self) -> SLAClock:
        """The clock new deadlines are computed with."""
        return self._base.with_policies(await self._policies.list_all())
