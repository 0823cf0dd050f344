"""Port interface for the assignment attempt log."""

from abc import ABC, abstractmethod

from lexroute.domain.entities.assignment import AssignmentResult


class AssignmentLog(ABC):
    @abstractmethod
    async def record(self, result: AssignmentResult) -> None:
        ...

    @abstractmethod
    async def get_all(self) -> list[AssignmentResult]:
        ...
