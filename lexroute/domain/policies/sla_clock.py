"""SLAClock — deadline computation and risk classification."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping

from lexroute.domain.entities.sla_policy import SLAPolicy
from lexroute.domain.value_objects.enums import RequestType, SLAStatus, Urgency

# Hours allowed per (request type, urgency).
DEFAULT_SLA_HOURS: dict[tuple[RequestType, Urgency], int] = {
    (RequestType.CONSULTATION, Urgency.LOW): 48,
    (RequestType.CONSULTATION, Urgency.NORMAL): 24,
    (RequestType.CONSULTATION, Urgency.HIGH): 12,
    (RequestType.CONSULTATION, Urgency.URGENT): 4,
    (RequestType.LEGAL_OPINION, Urgency.LOW): 108,
    (RequestType.LEGAL_OPINION, Urgency.NORMAL): 72,
    (RequestType.LEGAL_OPINION, Urgency.HIGH): 54,
    (RequestType.LEGAL_OPINION, Urgency.URGENT): 36,
    (RequestType.SERVICE, Urgency.LOW): 72,
    (RequestType.SERVICE, Urgency.NORMAL): 48,
    (RequestType.SERVICE, Urgency.HIGH): 36,
    (RequestType.SERVICE, Urgency.URGENT): 24,
    (RequestType.LITIGATION, Urgency.LOW): 108,
    (RequestType.LITIGATION, Urgency.NORMAL): 72,
    (RequestType.LITIGATION, Urgency.HIGH): 54,
    (RequestType.LITIGATION, Urgency.URGENT): 36,
    (RequestType.CALL, Urgency.LOW): 12,
    (RequestType.CALL, Urgency.NORMAL): 8,
    (RequestType.CALL, Urgency.HIGH): 6,
    (RequestType.CALL, Urgency.URGENT): 4,
}

DEFAULT_WARNING_WINDOW = timedelta(hours=2)

_URGENCY_WEIGHT = {Urgency.LOW: 1, Urgency.NORMAL: 2, Urgency.HIGH: 3, Urgency.URGENT: 4}
_STATUS_WEIGHT = {SLAStatus.ON_TRACK: 1, SLAStatus.AT_RISK: 3, SLAStatus.BREACHED: 5}


def classify(now: datetime, deadline: datetime, warning_window: timedelta) -> SLAStatus:
    """Classify remaining time before ``deadline``.

    ``breached`` when the deadline has been reached, ``at_risk`` when the
    remaining time fits inside the warning window, ``on_track`` otherwise.
    """
    if now >= deadline:
        return SLAStatus.BREACHED
    if deadline - now <= warning_window:
        return SLAStatus.AT_RISK
    return SLAStatus.ON_TRACK


def parse_hours_overrides(raw: Mapping[str, int]) -> dict[tuple[RequestType, Urgency], int]:
    """Parse ``{"consultation:urgent": 2}`` style overrides from settings."""
    parsed: dict[tuple[RequestType, Urgency], int] = {}
    for key, hours in raw.items():
        type_part, _, urgency_part = key.partition(":")
        try:
            pair = (RequestType(type_part.strip()), Urgency(urgency_part.strip()))
        except ValueError:
            raise ValueError(f"Invalid SLA override key '{key}'") from None
        parsed[pair] = int(hours)
    return parsed


class SLAClock:
    """Deadline table plus warning window; every method is side-effect free."""

    def __init__(
        self,
        hours: Mapping[tuple[RequestType, Urgency], int] | None = None,
        warning_window: timedelta = DEFAULT_WARNING_WINDOW,
    ):
        table = dict(DEFAULT_SLA_HOURS)
        if hours:
            table.update(hours)

        missing = [
            f"{t.value}:{u.value}"
            for t in RequestType
            for u in Urgency
            if (t, u) not in table
        ]
        if missing:
            raise ValueError(f"SLA table is missing entries: {', '.join(missing)}")
        if any(h <= 0 for h in table.values()):
            raise ValueError("SLA hours must be positive")

        self._hours = table
        self.warning_window = warning_window

    def hours_for(self, request_type: RequestType, urgency: Urgency) -> int:
        return self._hours[(request_type, urgency)]

    def compute_deadline(
        self, request_type: RequestType, urgency: Urgency, submitted_at: datetime
    ) -> datetime:
        return submitted_at + timedelta(hours=self.hours_for(request_type, urgency))

    def classify(self, now: datetime, deadline: datetime) -> SLAStatus:
        return classify(now, deadline, self.warning_window)

    def reclassify(
        self, previous: SLAStatus, now: datetime, deadline: datetime
    ) -> SLAStatus:
        """Like ``classify`` but a breach sticks until a reassignment resets it."""
        if previous == SLAStatus.BREACHED:
            return SLAStatus.BREACHED
        return self.classify(now, deadline)

    def with_policies(self, policies: Iterable[SLAPolicy]) -> "SLAClock":
        """A copy whose table is overridden by the active policies."""
        table = dict(self._hours)
        for policy in policies:
            if policy.is_active:
                table[policy.key] = policy.hours
        return SLAClock(table, self.warning_window)


def percent_elapsed(submitted_at: datetime, deadline: datetime, now: datetime) -> int:
    """Share of the SLA window already used, clamped to 0..100."""
    total = (deadline - submitted_at).total_seconds()
    if total <= 0:
        return 100
    elapsed = min((now - submitted_at).total_seconds(), total)
    return max(round(elapsed / total * 100), 0)


def urgency_score(urgency: Urgency, status: SLAStatus, elapsed_percent: int) -> int:
    """Higher is more urgent: urgency weight, SLA status weight, then time used."""
    return _URGENCY_WEIGHT[urgency] * 10 + _STATUS_WEIGHT[status] * 20 + elapsed_percent
