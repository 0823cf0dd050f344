"""Port interface for routing rule persistence."""

from abc import ABC, abstractmethod

from lexroute.domain.entities.routing_rule import RoutingRule


class RoutingRuleRepository(ABC):
    @abstractmethod
    async def add(self, rule: RoutingRule) -> RoutingRule:
        ...

    @abstractmethod
    async def get_by_id(self, rule_id: str) -> RoutingRule | None:
        ...

    @abstractmethod
    async def update(self, rule: RoutingRule) -> RoutingRule:
        ...

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        """Return False when no rule had that id."""
        ...

    @abstractmethod
    async def list_all(self) -> list[RoutingRule]:
        ...
