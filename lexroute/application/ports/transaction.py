"""Port interface for nested transaction scopes."""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class TransactionScope(ABC):
    @abstractmethod
    def savepoint(self) -> AsyncContextManager[None]:
        """Open a nested scope.

        Writes made inside are undone if the block raises (including
        cancellation), without touching work done before the scope opened.
        """
        ...
