"""Candidate ranking — filter a provider pool and order it best-first."""

from __future__ import annotations

import math
from typing import Iterable

from lexroute.domain.entities.provider import ProviderCandidate
from lexroute.domain.entities.routing_rule import TargetCriteria


def filter_candidates(
    candidates: Iterable[ProviderCandidate], criteria: TargetCriteria
) -> list[ProviderCandidate]:
    return [c for c in candidates if criteria.admits(c)]


def _rank_key(c: ProviderCandidate) -> tuple:
    # Missing rating sorts after every rated provider.
    rating_key = -c.rating if c.rating is not None else math.inf
    return (c.active_request_count, rating_key, -c.experience_years, c.provider_user_id)


def rank(candidates: Iterable[ProviderCandidate]) -> list[ProviderCandidate]:
    """Best-first ordering.

    1. active_request_count ASC (load balancing)
    2. rating DESC, missing rating lowest (quality)
    3. experience_years DESC (tie-break)
    4. provider_user_id ASC, so the result never depends on input order
    """
    return sorted(candidates, key=_rank_key)
