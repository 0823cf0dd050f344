"""Port interface for delivering notification events."""

from abc import ABC, abstractmethod

from lexroute.domain.entities.notification import NotificationEvent


class NotificationSink(ABC):
    @abstractmethod
    async def notify(self, event: NotificationEvent) -> None:
        """Fire-and-forget delivery. Callers treat failures as best-effort."""
        ...
