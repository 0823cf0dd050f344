"""AssignmentEngine — route a pending request to exactly one provider."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone

from lexroute.application.best_effort import run_best_effort
from lexroute.application.ports.assignment_repo import AssignmentLog
from lexroute.application.ports.notification_port import NotificationSink
from lexroute.application.ports.provider_validator import ProviderValidator
from lexroute.application.ports.request_repo import RequestRepository
from lexroute.application.ports.round_robin_repo import RoundRobinRepository
from lexroute.application.ports.transaction import TransactionScope
from lexroute.application.use_cases.candidate_pool import ProviderCandidatePool
from lexroute.application.use_cases.routing_rules import RoutingRuleCatalog
from lexroute.domain.entities.assignment import AssignmentResult, RoutingStats
from lexroute.domain.entities.notification import NotificationEvent
from lexroute.domain.entities.provider import ProviderWorkload
from lexroute.domain.entities.request import RequestAttributes, ServiceRequest
from lexroute.domain.errors import (
    ConcurrencyConflict,
    InvalidProvider,
    InvalidTransition,
    NotFound,
)
from lexroute.domain.policies.request_state import is_terminal
from lexroute.domain.policies.round_robin import pick_next
from lexroute.domain.policies.sla_clock import SLAClock
from lexroute.domain.value_objects.enums import (
    AssignmentFailure,
    NotificationKind,
    RequestStatus,
    SelectionStrategy,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentEngine:
    """Orchestrates rule lookup, candidate ranking and the guarded write."""

    def __init__(
        self,
        request_repo: RequestRepository,
        catalog: RoutingRuleCatalog,
        pool: ProviderCandidatePool,
        rr_repo: RoundRobinRepository,
        validator: ProviderValidator,
        notifier: NotificationSink,
        assignment_log: AssignmentLog,
        transaction: TransactionScope,
        clock: SLAClock,
        default_timeout: float | None = None,
    ):
        self._requests = request_repo
        self._catalog = catalog
        self._pool = pool
        self._rr = rr_repo
        self._validator = validator
        self._notifier = notifier
        self._log = assignment_log
        self._tx = transaction
        self._clock = clock
        self._default_timeout = default_timeout

    # ─── Auto-assignment ───

    async def auto_assign(
        self,
        request_id: str,
        attributes: RequestAttributes | None = None,
        timeout: float | None = None,
        now: datetime | None = None,
    ) -> AssignmentResult:
        """Assign a pending request to the best provider of its matching rule.

        Pipeline:
        1. Load the request; an existing assignment is returned as-is
        2. Find the first applicable rule
        3. Filter and rank the rule's candidate pool
        4. Pick the head (or rotate for round-robin rules)
        5. Conditional ``pending -> assigned`` write; a lost race is re-read once

        Steps run in a savepoint and ``timeout`` bounds only them; logging and
        the assignment notification follow, best-effort.

        Soft outcomes come back as failed results. ``NotFound`` and
        ``ConcurrencyConflict`` propagate.
        """
        now = now or _utcnow()
        timeout = timeout if timeout is not None else self._default_timeout

        try:
            if timeout is None:
                result = await self._assign_isolated(request_id, attributes, now)
            else:
                result = await asyncio.wait_for(
                    self._assign_isolated(request_id, attributes, now), timeout
                )
        except asyncio.TimeoutError:
            result = await self._after_timeout(request_id, timeout, now)

        await run_best_effort(f"assignment-log {request_id}", self._log.record(result))
        if result.success and not result.already_assigned:
            await run_best_effort(
                f"notify {NotificationKind.REQUEST_ASSIGNED.value}",
                self._notify_assigned(result, now),
            )
        return result

    async def _assign_isolated(
        self, request_id: str, attributes: RequestAttributes | None, now: datetime
    ) -> AssignmentResult:
        # A failed or cancelled attempt leaves the caller's transaction usable.
        async with self._tx.savepoint():
            return await self._assign(request_id, attributes, now)

    async def _after_timeout(
        self, request_id: str, timeout: float, now: datetime
    ) -> AssignmentResult:
        current = await self._load(request_id)
        if current.status != RequestStatus.PENDING and current.assigned_provider_id:
            logger.info(
                "Auto-assign of request %s timed out after %ss; already assigned to %s",
                request_id, timeout, current.assigned_provider_id,
            )
            return AssignmentResult.assigned(
                request_id, current.assigned_provider_id, now, already_assigned=True,
            )
        logger.warning("Auto-assign of request %s timed out after %ss", request_id, timeout)
        return AssignmentResult.failed(request_id, AssignmentFailure.TIMEOUT, now)

    async def _notify_assigned(self, result: AssignmentResult, now: datetime) -> None:
        request = await self._load(result.request_id)
        event = NotificationEvent.for_request(
            NotificationKind.REQUEST_ASSIGNED, request, now,
            provider_id=result.provider_id, rule_id=result.rule_id,
        )
        await self._notifier.notify(event)

    async def _assign(
        self, request_id: str, attributes: RequestAttributes | None, now: datetime
    ) -> AssignmentResult:
        request = await self._load(request_id)

        if request.status != RequestStatus.PENDING:
            return self._existing_or_not_pending(request, now)

        attrs = attributes or request.attributes()
        rule = await self._catalog.find_applicable_rule(attrs)
        if rule is None:
            return AssignmentResult.failed(request_id, AssignmentFailure.NO_RULE_MATCHED, now)

        if rule.strategy == SelectionStrategy.MANUAL:
            logger.info("Request %s matched manual rule %s", request.request_number, rule.id)
            return AssignmentResult.failed(
                request_id, AssignmentFailure.MANUAL_ASSIGNMENT_REQUIRED, now,
                rule_id=rule.id, strategy=rule.strategy,
            )

        candidates = await self._pool.available_candidates(rule.target)
        ranked = self._pool.rank(candidates)
        if not ranked:
            logger.warning(
                "Request %s: rule %s matched but no provider is available",
                request.request_number, rule.id,
            )
            return AssignmentResult.failed(
                request_id, AssignmentFailure.NO_PROVIDER_AVAILABLE, now,
                rule_id=rule.id, strategy=rule.strategy,
            )

        if rule.strategy == SelectionStrategy.ROUND_ROBIN:
            counter = await self._rr.increment_counter(f"rule-{rule.id}")  # atomic: returns old value
            chosen, _ = pick_next(ranked, counter)
        else:
            chosen = ranked[0]

        written = await self._requests.write_assignment(request_id, chosen.provider_user_id, now)
        if not written:
            # Lost the race: someone else moved the request out of pending.
            current = await self._load(request_id)
            if current.status != RequestStatus.PENDING and current.assigned_provider_id:
                logger.info(
                    "Request %s was assigned concurrently to %s",
                    request.request_number, current.assigned_provider_id,
                )
                return AssignmentResult.assigned(
                    request_id, current.assigned_provider_id, now, already_assigned=True,
                )
            raise ConcurrencyConflict(
                f"Request {request_id} changed during assignment (now {current.status.value})",
                {"request_id": request_id, "status": current.status.value},
            )

        logger.info(
            "Request %s → provider %s (rule %s, %s)",
            request.request_number, chosen.provider_user_id, rule.id, rule.strategy.value,
        )
        return AssignmentResult.assigned(
            request_id, chosen.provider_user_id, now, rule_id=rule.id, strategy=rule.strategy,
        )

    @staticmethod
    def _existing_or_not_pending(request: ServiceRequest, now: datetime) -> AssignmentResult:
        if request.assigned_provider_id:
            return AssignmentResult.assigned(
                request.id, request.assigned_provider_id, now, already_assigned=True,
            )
        return AssignmentResult.failed(request.id, AssignmentFailure.REQUEST_NOT_PENDING, now)

    # ─── Manual reassignment ───

    async def reassign(
        self,
        request_id: str,
        provider_id: str,
        reason: str | None = None,
        recompute_deadline: bool = False,
        now: datetime | None = None,
    ) -> AssignmentResult:
        """Move a non-terminal request to ``provider_id``. Errors propagate.

        Clears a breached freeze: the SLA status is classified afresh against
        the current deadline, or against a new one when ``recompute_deadline``.
        """
        now = now or _utcnow()
        request = await self._load(request_id)

        validation = await self._validator.validate(provider_id)
        if not validation.valid:
            raise InvalidProvider(provider_id, validation.error or "provider is not valid")

        if is_terminal(request.status):
            raise InvalidTransition(request.status, RequestStatus.ASSIGNED, request.request_type)

        if request.status == RequestStatus.PENDING:
            written = await self._requests.write_assignment(request_id, provider_id, now)
            if not written:
                current = await self._load(request_id)
                if is_terminal(current.status) or current.status == RequestStatus.PENDING:
                    raise ConcurrencyConflict(
                        f"Request {request_id} changed during reassignment (now {current.status.value})",
                        {"request_id": request_id, "status": current.status.value},
                    )
                await self._requests.write_request_provider(request_id, provider_id, now)
        else:
            await self._requests.write_request_provider(request_id, provider_id, now)

        if recompute_deadline:
            deadline = self._clock.compute_deadline(request.request_type, request.urgency, now)
            await self._requests.update_sla(request_id, self._clock.classify(now, deadline), deadline)
        else:
            await self._requests.update_sla(
                request_id, self._clock.classify(now, request.sla_deadline)
            )

        logger.info(
            "Request %s reassigned %s → %s (%s)",
            request.request_number, request.assigned_provider_id, provider_id, reason or "no reason",
        )
        result = AssignmentResult.assigned(
            request_id, provider_id, now, strategy=SelectionStrategy.MANUAL, note=reason,
        )
        await run_best_effort(f"assignment-log {request_id}", self._log.record(result))

        event = NotificationEvent.for_request(
            NotificationKind.REQUEST_REASSIGNED, request, now,
            provider_id=provider_id,
            previous_provider_id=request.assigned_provider_id,
            reason=reason,
        )
        await run_best_effort(f"notify {event.kind.value}", self._notifier.notify(event))
        return result

    # ─── Read models ───

    async def get_provider_workload(
        self, provider_id: str, now: datetime | None = None
    ) -> ProviderWorkload:
        now = now or _utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._pool.workload(provider_id, start_of_day)

    async def get_routing_stats(self) -> RoutingStats:
        rules = await self._catalog.list_rules()
        attempts = await self._log.get_all()

        assigned = [a for a in attempts if a.success and not a.already_assigned]
        return RoutingStats(
            total_rules=len(rules),
            active_rules=sum(1 for r in rules if r.is_active),
            rules_by_strategy=dict(Counter(r.strategy.value for r in rules)),
            rules_by_request_type=dict(
                Counter(t for r in rules for t in r.conditions.request_types())
            ),
            total_attempts=len(attempts),
            successful_attempts=sum(1 for a in attempts if a.success),
            assignments_by_rule=dict(Counter(a.rule_id for a in assigned if a.rule_id)),
            assignments_by_provider=dict(Counter(a.provider_id for a in assigned)),
            failures_by_reason=dict(
                Counter(a.reason.value for a in attempts if not a.success and a.reason)
            ),
        )

    # ─── Helpers ───

    async def _load(self, request_id: str) -> ServiceRequest:
        request = await self._requests.get_by_id(request_id)
        if request is None:
            raise NotFound("ServiceRequest", request_id)
        return request
