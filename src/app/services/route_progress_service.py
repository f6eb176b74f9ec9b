from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from src.app.ports.output import IFleetDirectory
from src.app.services.location_ingest_service import LocationIngestService
from src.domain.algorithms.route_progress import (
    DEFAULT_AVG_SPEED_KMH,
    DEFAULT_MINUTES_PER_STOP,
    DEFAULT_PROXIMITY_KM,
    derive_unit_progress,
)
from src.domain.exceptions import NotFoundError
from src.domain.models import CurrentPosition, RouteProgress, TrackedUnit


@dataclass(slots=True)
class RouteProgressService:
    """Server-side rendition of the route-progress view for one unit."""

    fleet_directory: IFleetDirectory
    ingest_service: LocationIngestService
    proximity_km: float = DEFAULT_PROXIMITY_KM
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH
    minutes_per_stop: float = DEFAULT_MINUTES_PER_STOP
    # Local wall clock: schedule times are local time-of-day strings.
    clock: Callable[[], datetime] = field(default=datetime.now)

    def list_units_for_today(self) -> tuple[TrackedUnit, ...]:
        return self.fleet_directory.list_units(available_only=True)

    async def progress(
        self, *, unit_id: str
    ) -> tuple[TrackedUnit, CurrentPosition | None, RouteProgress]:
        unit = self.fleet_directory.get_unit(unit_id)
        if unit is None:
            raise NotFoundError("Bus not found")

        position = await self.ingest_service.lookup(unit_id=unit_id)
        progress = derive_unit_progress(
            unit,
            position,
            now=self.clock(),
            proximity_km=self.proximity_km,
            avg_speed_kmh=self.avg_speed_kmh,
            minutes_per_stop=self.minutes_per_stop,
        )
        return unit, position, progress
