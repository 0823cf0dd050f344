"""Port interface for SLA policy persistence."""

from abc import ABC, abstractmethod

from lexroute.domain.entities.sla_policy import SLAPolicy


class SLAPolicyRepository(ABC):
    @abstractmethod
    async def add(self, policy: SLAPolicy) -> SLAPolicy:
        ...

    @abstractmethod
    async def get_by_id(self, policy_id: str) -> SLAPolicy | None:
        ...

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        ...

    @abstractmethod
    async def delete(self, policy_id: str) -> bool:
        """Return False when no policy had that id."""
        ...

    @abstractmethod
    async def list_all(self) -> list[SLAPolicy]:
        ...
