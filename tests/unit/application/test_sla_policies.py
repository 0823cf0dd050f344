"""Tests for SLAPolicyCatalog with an in-memory repository."""

from __future__ import annotations

from datetime import timedelta

import pytest

from lexroute.application.use_cases.sla_policies import SLAPolicyCatalog, SLAPolicyDraft
from lexroute.domain.errors import NotFound, ValidationError
from lexroute.domain.policies.sla_clock import SLAClock
from lexroute.domain.value_objects.enums import RequestType, Urgency
from tests.fakes import NOW, FakeSLAPolicyRepo


@pytest.fixture
def policy_repo():
    return FakeSLAPolicyRepo()


@pytest.fixture
def policies(policy_repo, clock):
    return SLAPolicyCatalog(policy_repo, clock)


def _draft(request_type=RequestType.CALL, urgency=Urgency.URGENT, hours=2, **kw):
    return SLAPolicyDraft(
        name=kw.pop("name", "Urgent calls"),
        request_type=request_type,
        urgency=urgency,
        hours=hours,
        **kw,
    )


@pytest.mark.asyncio
async def test_create_and_get(policies):
    created = await policies.create(_draft(), now=NOW)

    fetched = await policies.get(created.id)
    assert fetched.hours == 2
    assert fetched.created_at == NOW


@pytest.mark.asyncio
async def test_create_rejects_duplicate_key(policies):
    await policies.create(_draft(), now=NOW)

    with pytest.raises(ValidationError):
        await policies.create(_draft(name="again", hours=3), now=NOW)


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, -4, True, 2.5])
async def test_create_rejects_bad_hours(policies, hours):
    with pytest.raises(ValidationError):
        await policies.create(_draft(hours=hours), now=NOW)


@pytest.mark.asyncio
async def test_create_rejects_blank_name(policies):
    with pytest.raises(ValidationError):
        await policies.create(_draft(name="   "), now=NOW)


@pytest.mark.asyncio
async def test_update_changes_hours(policies):
    created = await policies.create(_draft(), now=NOW)

    updated = await policies.update(created.id, {"hours": 3}, now=NOW + timedelta(hours=1))

    assert updated.hours == 3
    assert updated.updated_at == NOW + timedelta(hours=1)


@pytest.mark.asyncio
async def test_update_rejects_key_fields(policies):
    created = await policies.create(_draft(), now=NOW)

    with pytest.raises(ValidationError):
        await policies.update(created.id, {"urgency": Urgency.LOW})


@pytest.mark.asyncio
async def test_delete_unknown_raises(policies):
    with pytest.raises(NotFound):
        await policies.delete("missing")


@pytest.mark.asyncio
async def test_toggle_flips_active(policies):
    created = await policies.create(_draft(), now=NOW)

    toggled = await policies.set_active(created.id, now=NOW)
    assert not toggled.is_active
    assert (await policies.set_active(created.id, True, now=NOW)).is_active


@pytest.mark.asyncio
async def test_list_active_only_sorted(policies):
    await policies.create(_draft(RequestType.SERVICE, Urgency.LOW, 10), now=NOW)
    await policies.create(_draft(RequestType.CALL, Urgency.HIGH, 3), now=NOW)
    await policies.create(_draft(RequestType.CALL, Urgency.LOW, 9, is_active=False), now=NOW)

    active = await policies.list_policies(active_only=True)

    assert [(p.request_type, p.urgency) for p in active] == [
        (RequestType.CALL, Urgency.HIGH),
        (RequestType.SERVICE, Urgency.LOW),
    ]


@pytest.mark.asyncio
async def test_current_clock_applies_active_policies(policies):
    created = await policies.create(_draft(hours=1), now=NOW)

    clock = await policies.current_clock()
    assert clock.compute_deadline(RequestType.CALL, Urgency.URGENT, NOW) == NOW + timedelta(hours=1)

    await policies.set_active(created.id, False, now=NOW)
    clock = await policies.current_clock()
    assert clock.hours_for(RequestType.CALL, Urgency.URGENT) == 4


@pytest.mark.asyncio
async def test_deleting_policy_falls_back_to_configured_hours(policy_repo):
    base = SLAClock(hours={(RequestType.CALL, Urgency.URGENT): 3})
    policies = SLAPolicyCatalog(policy_repo, base)
    created = await policies.create(_draft(hours=1), now=NOW)

    await policies.delete(created.id)

    assert (await policies.current_clock()).hours_for(RequestType.CALL, Urgency.URGENT) == 3
