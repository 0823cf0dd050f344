"""Tests for ProviderCandidatePool."""

from __future__ import annotations

import pytest

from lexroute.application.use_cases.candidate_pool import ProviderCandidatePool
from lexroute.domain.entities.routing_rule import TargetCriteria
from tests.fakes import NOW, make_provider


@pytest.mark.asyncio
async def test_available_candidates_filters_by_criteria(directory):
    directory.providers = [
        make_provider("cert", is_certified=True),
        make_provider("plain"),
        make_provider("off", is_certified=True, is_active=False),
    ]
    pool = ProviderCandidatePool(directory)

    found = await pool.available_candidates(TargetCriteria(require_certification=True))

    assert [p.provider_user_id for p in found] == ["cert"]


@pytest.mark.asyncio
async def test_empty_pool_is_not_an_error(directory):
    pool = ProviderCandidatePool(directory)
    assert await pool.available_candidates(TargetCriteria()) == []


@pytest.mark.asyncio
async def test_directory_is_queried_on_every_call(directory):
    directory.providers = [make_provider("a")]
    pool = ProviderCandidatePool(directory)

    await pool.available_candidates(TargetCriteria())
    await pool.available_candidates(TargetCriteria())

    assert directory.calls == 2


@pytest.mark.asyncio
async def test_workload(directory):
    directory.providers = [make_provider("a", active=2)]
    directory.completed = {"a": 5}
    pool = ProviderCandidatePool(directory)

    workload = await pool.workload("a", NOW)

    assert workload.active_request_count == 2
    assert workload.completed_today_count == 5


def test_rank_head_is_lowest_workload():
    ranked = ProviderCandidatePool.rank(
        [make_provider("a", active=3), make_provider("b", active=1), make_provider("c", active=2)]
    )
    assert ranked[0].provider_user_id == "b"
