"""RoundRobinPolicy — rotate through an already ranked candidate list."""

from __future__ import annotations

from lexroute.domain.entities.provider import ProviderCandidate


def pick_next(
    ranked: list[ProviderCandidate], counter: int
) -> tuple[ProviderCandidate, int]:
    """Deterministic round-robin pick.

    The list is expected in ranking order, so counter 0 always lands on the
    best candidate and successive counters walk down the ranking.

    Args:
        ranked: non-empty list of eligible candidates, best first.
        counter: current round-robin counter value.

    Returns:
        (chosen_candidate, new_counter)

    Raises:
        ValueError: if the candidate list is empty.
    """
    if not ranked:
        raise ValueError("Cannot pick from an empty candidate list")

    index = counter % len(ranked)
    return ranked[index], counter + 1
