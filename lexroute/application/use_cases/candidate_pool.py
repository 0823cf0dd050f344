"""ProviderCandidatePool — eligible providers for a rule's target criteria."""

from __future__ import annotations

import logging
from datetime import datetime

from lexroute.application.ports.provider_directory import ProviderDirectory
from lexroute.domain.entities.provider import ProviderCandidate, ProviderWorkload
from lexroute.domain.entities.routing_rule import TargetCriteria
from lexroute.domain.policies.candidate_ranking import filter_candidates, rank

logger = logging.getLogger(__name__)


class ProviderCandidatePool:
    def __init__(self, directory: ProviderDirectory):
        self._directory = directory

    async def available_candidates(self, criteria: TargetCriteria) -> list[ProviderCandidate]:
        """Providers admitted by ``criteria``; an empty list is a normal outcome.

        Workload counts come fresh from the directory on every call.
        """
        providers = await self._directory.list_eligible_providers()
        admitted = filter_candidates(providers, criteria)
        logger.debug(
            "Candidate pool: %d of %d providers admitted", len(admitted), len(providers)
        )
        return admitted

    @staticmethod
    def rank(candidates: list[ProviderCandidate]) -> list[ProviderCandidate]:
        return rank(candidates)

    async def workload(self, provider_id: str, since: datetime) -> ProviderWorkload:
        """Live workload; ``completed_today_count`` counts completions after ``since``."""
        active = await self._directory.active_request_count(provider_id)
        completed = await self._directory.completed_count_since(provider_id, since)
        return ProviderWorkload(
            provider_id=provider_id,
            active_request_count=active,
            completed_today_count=completed,
        )
