"""Tests for AssignmentEngine with in-memory fakes."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from lexroute.application.use_cases.assign_request import AssignmentEngine
from lexroute.application.use_cases.candidate_pool import ProviderCandidatePool
from lexroute.domain.entities.request import RequestAttributes
from lexroute.domain.entities.routing_rule import TargetCriteria
from lexroute.domain.errors import (
    ConcurrencyConflict,
    InvalidProvider,
    InvalidTransition,
    NotFound,
)
from lexroute.domain.value_objects.enums import (
    AssignmentFailure,
    NotificationKind,
    RequestStatus,
    RequestType,
    SelectionStrategy,
    SLAStatus,
    Urgency,
)
from tests.fakes import NOW, FakeNotifier, make_provider, make_request, make_rule


@pytest.fixture
def pending(request_repo):
    request = make_request("req-1")
    request_repo.requests[request.id] = request
    return request


# ─── Auto-assignment ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_picks_lowest_workload(engine, rule_repo, directory, pending, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [
        make_provider("a", active=3),
        make_provider("b", active=1),
        make_provider("c", active=2),
    ]

    result = await engine.auto_assign(pending.id, now=NOW)

    assert result.success
    assert result.provider_id == "b"
    assert result.rule_id == "r1"
    stored = request_repo.requests[pending.id]
    assert stored.status == RequestStatus.ASSIGNED
    assert stored.assigned_provider_id == "b"


@pytest.mark.asyncio
async def test_never_selects_unavailable_provider(engine, rule_repo, directory, pending):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [
        make_provider("inactive", active=0, is_active=False),
        make_provider("closed", active=0, can_accept_requests=False),
        make_provider("busy", active=9),
    ]

    result = await engine.auto_assign(pending.id, now=NOW)

    assert result.provider_id == "busy"


@pytest.mark.asyncio
async def test_specific_rule_beats_catch_all(engine, rule_repo, directory, request_repo):
    request = make_request(
        "req-u", request_type=RequestType.CONSULTATION, urgency=Urgency.URGENT,
        category="consultation",
    )
    request_repo.requests[request.id] = request
    rule_repo.rules["A"] = make_rule(
        "A", 1,
        match={"category": "consultation", "urgency": "urgent"},
        target=TargetCriteria(require_certification=True),
    )
    rule_repo.rules["B"] = make_rule("B", 2, catch_all=True)
    directory.providers = [
        make_provider("uncertified", active=0),
        make_provider("cert-busy", active=4, is_certified=True),
        make_provider("cert-light", active=1, is_certified=True),
    ]

    result = await engine.auto_assign(request.id, now=NOW)

    assert result.rule_id == "A"
    assert result.provider_id == "cert-light"


@pytest.mark.asyncio
async def test_unmatched_litigation_stays_pending(engine, rule_repo, directory, request_repo, notifier):
    request = make_request("req-l", request_type=RequestType.LITIGATION, category="zoning-appeal")
    request_repo.requests[request.id] = request
    rule_repo.rules["r1"] = make_rule("r1", 1, match={"category": ["family", "tax"]})
    directory.providers = [make_provider("p1")]

    result = await engine.auto_assign(request.id, now=NOW)

    assert not result.success
    assert result.reason == AssignmentFailure.NO_RULE_MATCHED
    assert request_repo.requests[request.id].status == RequestStatus.PENDING
    assert request_repo.requests[request.id].assigned_provider_id is None
    assert notifier.events == []


@pytest.mark.asyncio
async def test_no_provider_available(engine, rule_repo, directory, pending):
    rule_repo.rules["r1"] = make_rule(
        "r1", 1, catch_all=True, target=TargetCriteria(specializations=frozenset({"maritime"})),
    )
    directory.providers = [make_provider("p1", specializations=frozenset({"tax"}))]

    result = await engine.auto_assign(pending.id, now=NOW)

    assert result.reason == AssignmentFailure.NO_PROVIDER_AVAILABLE
    assert result.rule_id == "r1"


@pytest.mark.asyncio
async def test_manual_rule_requires_admin(engine, rule_repo, directory, pending, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True, strategy=SelectionStrategy.MANUAL)
    directory.providers = [make_provider("p1")]

    result = await engine.auto_assign(pending.id, now=NOW)

    assert result.reason == AssignmentFailure.MANUAL_ASSIGNMENT_REQUIRED
    assert request_repo.requests[pending.id].status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_round_robin_rotates_through_ranking(engine, rule_repo, directory, request_repo, rr_repo):
    rule_repo.rules["rr"] = make_rule("rr", 1, catch_all=True, strategy=SelectionStrategy.ROUND_ROBIN)
    directory.providers = [make_provider("a"), make_provider("b")]

    picked = []
    for i in range(3):
        request = make_request(f"req-{i}")
        request_repo.requests[request.id] = request
        picked.append((await engine.auto_assign(request.id, now=NOW)).provider_id)

    assert picked == ["a", "b", "a"]
    assert rr_repo.counters["rule-rr"] == 3


@pytest.mark.asyncio
async def test_explicit_attributes_override_stored_ones(engine, rule_repo, directory, pending):
    rule_repo.rules["r1"] = make_rule("r1", 1, match={"specializations": "tax"})
    directory.providers = [make_provider("p1")]

    attrs = RequestAttributes(request_type=RequestType.CONSULTATION, specializations=frozenset({"Tax"}))
    result = await engine.auto_assign(pending.id, attrs, now=NOW)

    assert result.success and result.rule_id == "r1"


@pytest.mark.asyncio
async def test_already_assigned_is_reported(engine, request_repo, directory):
    request = make_request("req-a", status=RequestStatus.ASSIGNED, provider_id="p9")
    request_repo.requests[request.id] = request

    result = await engine.auto_assign(request.id, now=NOW)

    assert result.success and result.already_assigned
    assert result.provider_id == "p9"
    assert directory.calls == 0


@pytest.mark.asyncio
async def test_cancelled_without_provider_is_not_pending(engine, request_repo):
    request = make_request("req-c", status=RequestStatus.CANCELLED)
    request_repo.requests[request.id] = request

    result = await engine.auto_assign(request.id, now=NOW)

    assert result.reason == AssignmentFailure.REQUEST_NOT_PENDING


@pytest.mark.asyncio
async def test_unknown_request_raises(engine):
    with pytest.raises(NotFound):
        await engine.auto_assign("missing", now=NOW)


@pytest.mark.asyncio
async def test_concurrent_calls_assign_once(engine, rule_repo, directory, pending, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a"), make_provider("b", active=2)]

    results = await asyncio.gather(*(engine.auto_assign(pending.id, now=NOW) for _ in range(10)))

    assert request_repo.assignment_writes == 1
    winners = [r for r in results if not r.already_assigned]
    existing = [r for r in results if r.already_assigned]
    assert len(winners) == 1
    assert len(existing) == 9
    assert all(r.success and r.provider_id == "a" for r in results)


@pytest.mark.asyncio
async def test_lost_race_to_cancellation_raises_conflict(engine, rule_repo, directory, pending, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]

    original_write = request_repo.write_assignment

    async def cancel_first(request_id, provider_id, now):
        request_repo.requests[request_id] = replace(
            request_repo.requests[request_id], status=RequestStatus.CANCELLED
        )
        return await original_write(request_id, provider_id, now)

    request_repo.write_assignment = cancel_first

    with pytest.raises(ConcurrencyConflict):
        await engine.auto_assign(pending.id, now=NOW)


@pytest.mark.asyncio
async def test_timeout_returns_failure(engine, rule_repo, directory, pending, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)

    async def slow_directory():
        await asyncio.sleep(1)
        return [make_provider("a")]

    directory.list_eligible_providers = slow_directory

    result = await engine.auto_assign(pending.id, timeout=0.01, now=NOW)

    assert not result.success
    assert result.reason == AssignmentFailure.TIMEOUT
    assert request_repo.requests[pending.id].status == RequestStatus.PENDING



@pytest.mark.asyncio
async def test_timeout_after_concurrent_assignment_reports_existing(
    engine, rule_repo, directory, pending, request_repo, assignment_log
):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)

    async def assigned_elsewhere_then_slow():
        request_repo.requests[pending.id] = pending.assigned_to("p-other", NOW)
        await asyncio.sleep(1)
        return [make_provider("a")]

    directory.list_eligible_providers = assigned_elsewhere_then_slow

    result = await engine.auto_assign(pending.id, timeout=0.01, now=NOW)

    assert result.success and result.already_assigned
    assert result.provider_id == "p-other"
    assert assignment_log.results[-1].reason is None


@pytest.mark.asyncio
async def test_slow_notification_does_not_count_against_timeout(
    request_repo, catalog, directory, rr_repo, validator, assignment_log, transaction, clock,
    rule_repo, pending,
):
    slow = FakeNotifier(delay=0.2)
    engine = AssignmentEngine(
        request_repo=request_repo,
        catalog=catalog,
        pool=ProviderCandidatePool(directory),
        rr_repo=rr_repo,
        validator=validator,
        notifier=slow,
        assignment_log=assignment_log,
        transaction=transaction,
        clock=clock,
    )
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]

    result = await engine.auto_assign(pending.id, timeout=0.05, now=NOW)

    assert result.success and not result.already_assigned
    assert result.provider_id == "a"
    assert request_repo.requests[pending.id].status == RequestStatus.ASSIGNED
    assert [r.success for r in assignment_log.results] == [True]
    assert [e.kind for e in slow.events] == [NotificationKind.REQUEST_ASSIGNED]
    assert slow.events[0].details["rule_id"] == "r1"


@pytest.mark.asyncio
async def test_assignment_runs_inside_a_savepoint(engine, rule_repo, directory, pending, transaction):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]

    await engine.auto_assign(pending.id, now=NOW)

    assert transaction.opened == 1
    assert transaction.rolled_back == 0


@pytest.mark.asyncio
async def test_failed_write_rolls_back_its_savepoint(
    engine, rule_repo, directory, pending, request_repo, transaction, notifier
):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]
    request_repo.fail_assignment_write = True

    with pytest.raises(RuntimeError):
        await engine.auto_assign(pending.id, now=NOW)

    assert transaction.rolled_back == 1
    assert notifier.events == []


@pytest.mark.asyncio
async def test_timeout_rolls_back_its_savepoint(engine, rule_repo, directory, pending, transaction):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)

    async def slow_directory():
        await asyncio.sleep(1)
        return [make_provider("a")]

    directory.list_eligible_providers = slow_directory

    await engine.auto_assign(pending.id, timeout=0.01, now=NOW)

    assert transaction.rolled_back == 1


@pytest.mark.asyncio
async def test_attempts_are_logged_and_notified(engine, rule_repo, directory, pending, assignment_log, notifier):
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]

    await engine.auto_assign(pending.id, now=NOW)

    assert len(assignment_log.results) == 1
    assert [e.kind for e in notifier.events] == [NotificationKind.REQUEST_ASSIGNED]
    assert notifier.events[0].provider_id == "a"


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_assignment(
    request_repo, catalog, directory, rr_repo, validator, assignment_log, transaction, clock,
    rule_repo, pending,
):
    engine = AssignmentEngine(
        request_repo=request_repo,
        catalog=catalog,
        pool=ProviderCandidatePool(directory),
        rr_repo=rr_repo,
        validator=validator,
        notifier=FakeNotifier(fail=True),
        assignment_log=assignment_log,
        transaction=transaction,
        clock=clock,
    )
    rule_repo.rules["r1"] = make_rule("r1", 1, catch_all=True)
    directory.providers = [make_provider("a")]

    result = await engine.auto_assign(pending.id, now=NOW)

    assert result.success


# ─── Reassignment ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reassign_replaces_provider(engine, request_repo, validator, notifier):
    request = make_request("req-r", status=RequestStatus.IN_PROGRESS, provider_id="old")
    request_repo.requests[request.id] = request
    validator.valid_ids.add("new")

    result = await engine.reassign(request.id, "new", reason="workload", now=NOW)

    stored = request_repo.requests[request.id]
    assert result.success and result.provider_id == "new"
    assert stored.assigned_provider_id == "new"
    assert stored.status == RequestStatus.IN_PROGRESS
    assert notifier.events[-1].kind == NotificationKind.REQUEST_REASSIGNED
    assert notifier.events[-1].details["previous_provider_id"] == "old"


@pytest.mark.asyncio
async def test_reassign_pending_goes_through_assignment(engine, request_repo, validator, pending):
    validator.valid_ids.add("p1")

    await engine.reassign(pending.id, "p1", now=NOW)

    stored = request_repo.requests[pending.id]
    assert stored.status == RequestStatus.ASSIGNED
    assert stored.assigned_provider_id == "p1"


@pytest.mark.asyncio
async def test_reassign_rejects_invalid_provider(engine, request_repo, pending):
    with pytest.raises(InvalidProvider):
        await engine.reassign(pending.id, "ghost", now=NOW)


@pytest.mark.asyncio
async def test_reassign_rejects_terminal_request(engine, request_repo, validator):
    request = make_request("req-done", status=RequestStatus.COMPLETED, provider_id="p1")
    request_repo.requests[request.id] = request
    validator.valid_ids.add("p2")

    with pytest.raises(InvalidTransition):
        await engine.reassign(request.id, "p2", now=NOW)


@pytest.mark.asyncio
async def test_reassign_unknown_request(engine, validator):
    validator.valid_ids.add("p1")
    with pytest.raises(NotFound):
        await engine.reassign("missing", "p1", now=NOW)


@pytest.mark.asyncio
async def test_reassign_clears_breach_against_existing_deadline(engine, request_repo, validator):
    request = make_request(
        "req-b", status=RequestStatus.ASSIGNED, provider_id="p1",
        sla_deadline=NOW + timedelta(hours=10), sla_status=SLAStatus.BREACHED,
    )
    request_repo.requests[request.id] = request
    validator.valid_ids.add("p2")

    await engine.reassign(request.id, "p2", now=NOW)

    assert request_repo.requests[request.id].sla_status == SLAStatus.ON_TRACK
    assert request_repo.requests[request.id].sla_deadline == NOW + timedelta(hours=10)


@pytest.mark.asyncio
async def test_reassign_can_recompute_deadline(engine, request_repo, validator):
    request = make_request(
        "req-b", status=RequestStatus.ASSIGNED, provider_id="p1",
        urgency=Urgency.URGENT, submitted_at=NOW - timedelta(days=2),
        sla_deadline=NOW - timedelta(days=1), sla_status=SLAStatus.BREACHED,
    )
    request_repo.requests[request.id] = request
    validator.valid_ids.add("p2")

    await engine.reassign(request.id, "p2", recompute_deadline=True, now=NOW)

    stored = request_repo.requests[request.id]
    assert stored.sla_deadline == NOW + timedelta(hours=4)
    assert stored.sla_status == SLAStatus.ON_TRACK


# ─── Read models ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_provider_workload_counts_from_start_of_day(engine, directory):
    directory.providers = [make_provider("p1", active=4)]
    directory.completed = {"p1": 2}

    workload = await engine.get_provider_workload("p1", now=NOW.replace(hour=15, minute=30))

    assert workload.active_request_count == 4
    assert workload.completed_today_count == 2
    assert directory.completed_since == [NOW.replace(hour=0, minute=0)]


@pytest.mark.asyncio
async def test_routing_stats(engine, rule_repo, directory, request_repo):
    rule_repo.rules["r1"] = make_rule("r1", 1, match={"request_type": "consultation"})
    rule_repo.rules["r2"] = make_rule("r2", 2, catch_all=True, strategy=SelectionStrategy.MANUAL)
    rule_repo.rules["r3"] = make_rule("r3", 3, catch_all=True, is_active=False)
    directory.providers = [make_provider("a")]
    request_repo.requests["c1"] = make_request("c1")
    request_repo.requests["s1"] = make_request("s1", request_type=RequestType.SERVICE)

    await engine.auto_assign("c1", now=NOW)
    await engine.auto_assign("s1", now=NOW)
    await engine.auto_assign("c1", now=NOW)

    stats = await engine.get_routing_stats()

    assert stats.total_rules == 3
    assert stats.active_rules == 2
    assert stats.rules_by_strategy == {"load_balanced": 2, "manual": 1}
    assert stats.rules_by_request_type == {"consultation": 1, "*": 2}
    assert stats.total_attempts == 3
    assert stats.successful_attempts == 2
    assert stats.assignments_by_rule == {"r1": 1}
    assert stats.assignments_by_provider == {"a": 1}
    assert stats.failures_by_reason == {"manual_assignment_required": 1}
