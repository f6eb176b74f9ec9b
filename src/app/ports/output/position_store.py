from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import CurrentPosition


class IPositionStore(ABC):
    """Latest known position per tracked unit.

    Per-unit writes are last-write-wins. `clear_all` must be atomic for readers:
    they observe either no unit cleared or every unit cleared, and a write that
    started before the clear must not resurrect a value after it.
    """

    @abstractmethod
    async def get(self, unit_id: str) -> CurrentPosition | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, unit_id: str, position: CurrentPosition) -> bool:
        """Store `position`; False when it was captured before the last reset."""

    @abstractmethod
    async def clear_all(self) -> None:
        raise NotImplementedError
