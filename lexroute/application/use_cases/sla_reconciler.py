"""SLAReconciler — periodic SLA risk reclassification of open requests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from lexroute.application.best_effort import run_best_effort
from lexroute.application.ports.notification_port import NotificationSink
from lexroute.application.ports.request_repo import RequestRepository
from lexroute.application.ports.transaction import TransactionScope
from lexroute.domain.entities.notification import NotificationEvent
from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.policies.request_state import is_terminal
from lexroute.domain.policies.sla_clock import SLAClock
from lexroute.domain.value_objects.enums import NotificationKind, SLAStatus

logger = logging.getLogger(__name__)

_ALERTS = {
    SLAStatus.AT_RISK: NotificationKind.SLA_AT_RISK,
    SLAStatus.BREACHED: NotificationKind.SLA_BREACHED,
}


@dataclass
class SLACycleReport:
    executed_at: datetime
    checked: int = 0
    updated_count: int = 0
    breaches: list[str] = field(default_factory=list)
    at_risk: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False


class SLAReconciler:
    """Reclassifies every non-terminal request against the clock.

    Only changed classifications are written. A breach is never undone here.
    Share ``lock`` between callers so overlapping cycles are skipped.
    """

    def __init__(
        self,
        request_repo: RequestRepository,
        clock: SLAClock,
        notifier: NotificationSink,
        transaction: TransactionScope,
        lock: asyncio.Lock | None = None,
    ):
        self._requests = request_repo
        self._clock = clock
        self._notifier = notifier
        self._tx = transaction
        self._lock = lock or asyncio.Lock()

    async def run_cycle(self, now: datetime | None = None) -> SLACycleReport:
        now = now or datetime.now(timezone.utc)
        if self._lock.locked():
            logger.warning("SLA cycle already running, skipping this run")
            return SLACycleReport(executed_at=now, skipped=True)

        async with self._lock:
            report = SLACycleReport(executed_at=now)
            requests = await self._requests.list_active()
            for request in requests:
                if is_terminal(request.status):
                    continue
                report.checked += 1
                try:
                    await self._reconcile(request, now, report)
                except Exception as e:
                    logger.exception("SLA check failed for request %s", request.id)
                    report.errors.append(f"{request.id}: {e}")

        logger.info(
            "SLA cycle: checked=%d updated=%d breached=%d at_risk=%d errors=%d",
            report.checked, report.updated_count, len(report.breaches),
            len(report.at_risk), len(report.errors),
        )
        return report

    async def _reconcile(
        self, request: ServiceRequest, now: datetime, report: SLACycleReport
    ) -> None:
        status = self._clock.reclassify(request.sla_status, now, request.sla_deadline)
        if status == request.sla_status:
            return

        # One savepoint per request; a failed write leaves the rest of the cycle intact.
        async with self._tx.savepoint():
            await self._requests.update_sla(request.id, status)
        report.updated_count += 1

        if status == SLAStatus.BREACHED:
            report.breaches.append(request.id)
            logger.warning("Request %s breached its SLA deadline", request.request_number)
        elif status == SLAStatus.AT_RISK:
            report.at_risk.append(request.id)

        kind = _ALERTS.get(status)
        if kind is not None:
            event = NotificationEvent.for_request(
                kind, request, now,
                sla_deadline=request.sla_deadline.isoformat(),
                previous_sla_status=request.sla_status.value,
            )
            await run_best_effort(f"notify {kind.value}", self._notifier.notify(event))
