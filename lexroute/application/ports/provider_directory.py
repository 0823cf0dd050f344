"""Port interface for the provider data source."""

from abc import ABC, abstractmethod
from datetime import datetime

from lexroute.domain.entities.provider import ProviderCandidate


class ProviderDirectory(ABC):
    @abstractmethod
    async def list_eligible_providers(self) -> list[ProviderCandidate]:
        """Active, accepting providers of approved organizations.

        ``active_request_count`` must be computed at call time from
        non-terminal requests only.
        """
        ...

    @abstractmethod
    async def active_request_count(self, provider_id: str) -> int:
        ...

    @abstractmethod
    async def completed_count_since(self, provider_id: str, since: datetime) -> int:
        ...
