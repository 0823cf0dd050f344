"""Port interface for validating a manual assignment target."""

from abc import ABC, abstractmethod

from lexroute.domain.entities.provider import ProviderValidation


class ProviderValidator(ABC):
    @abstractmethod
    async def validate(self, provider_id: str) -> ProviderValidation:
        """Provider must exist, be active, approved and accepting requests."""
        ...
