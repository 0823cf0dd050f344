"""Best-effort execution — run an operation, never let its error escape.

Used where a failure must not break the enclosing workflow: auto-assignment
during request creation, notifications, assignment-log writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BestEffortOutcome(Generic[T]):
    succeeded: bool
    value: T | None = None
    error: str | None = None


async def run_best_effort(label: str, operation: Awaitable[T]) -> BestEffortOutcome[T]:
    """Await ``operation`` and capture its result or error.

    ``Exception`` subclasses are logged and returned as a failed outcome.
    Cancellation is not an ``Exception`` and still propagates.
    """
    try:
        value = await operation
    except Exception as e:
        logger.exception("Best-effort operation '%s' failed", label)
        return BestEffortOutcome(succeeded=False, error=f"{type(e).__name__}: {e}")
    return BestEffortOutcome(succeeded=True, value=value)
