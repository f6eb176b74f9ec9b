from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import TrackedUnit


class IFleetDirectory(ABC):
    """Read-only port onto fleet/route management."""

    @abstractmethod
    def find_unit_by_driver(self, driver_id: str) -> TrackedUnit | None:
        """Return the unit currently assigned to `driver_id`, if any."""

    @abstractmethod
    def get_unit(self, unit_id: str) -> TrackedUnit | None:
        raise NotImplementedError

    @abstractmethod
    def list_units(self, *, available_only: bool = False) -> tuple[TrackedUnit, ...]:
        raise NotImplementedError
