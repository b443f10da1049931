"""
Unit of Work
============

Atomicity boundary for one logical operation (e.g. one ticket of a sweep).
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class IUnitOfWork(ABC):
    """Interface for scoped atomic writes."""

    @abstractmethod
    def atomic(self) -> AsyncContextManager[None]:
        """
        Async context manager; everything written inside either commits
        together or is rolled back when the block raises.
        """

    @abstractmethod
    async def commit(self) -> None:
        """
        Make everything written so far visible to other sessions.

        Called while the capacity guard is still held, so the next
        assignment decision sees this one.
        """
