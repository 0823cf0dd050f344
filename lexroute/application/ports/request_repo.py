"""Port interface for service request persistence."""

from abc import ABC, abstractmethod
from datetime import datetime

from lexroute.domain.entities.request import ServiceRequest
from lexroute.domain.value_objects.enums import RequestStatus, SLAStatus


class RequestRepository(ABC):
    @abstractmethod
    async def add(self, request: ServiceRequest) -> ServiceRequest:
        ...

    @abstractmethod
    async def get_by_id(self, request_id: str) -> ServiceRequest | None:
        ...

    @abstractmethod
    async def list_active(self) -> list[ServiceRequest]:
        """Return every request whose status is not terminal."""
        ...

    @abstractmethod
    async def write_assignment(
        self, request_id: str, provider_id: str, now: datetime
    ) -> bool:
        """Set the provider and move ``pending -> assigned`` in ONE atomic write.

        The write applies only if the stored status is still ``pending``
        (e.g. ``UPDATE ... WHERE id = :id AND status = 'pending'``).
        Returns False when the precondition did not hold; never read-then-write.
        """
        ...

    @abstractmethod
    async def write_request_provider(
        self, request_id: str, provider_id: str, now: datetime
    ) -> None:
        """Replace the assigned provider without touching the status."""
        ...

    @abstractmethod
    async def apply_transition(
        self, request: ServiceRequest, expected_status: RequestStatus
    ) -> bool:
        """Persist a new snapshot only if the stored status is ``expected_status``."""
        ...

    @abstractmethod
    async def update_sla(
        self,
        request_id: str,
        sla_status: SLAStatus,
        sla_deadline: datetime | None = None,
    ) -> None:
        """Write SLA fields; the deadline is left unchanged when None."""
        ...
