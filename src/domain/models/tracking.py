from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .geo import GeoPoint


@dataclass(frozen=True, slots=True)
class CurrentPosition:
    """Latest known coordinates of a tracked unit.

    Both coordinates are always replaced together; never partially updated.
    """

    latitude: float
    longitude: float
    captured_at: datetime

    def __post_init__(self) -> None:
        # Reuse GeoPoint range checks.
        GeoPoint(lat=self.latitude, lon=self.longitude)

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lon=self.longitude)


@dataclass(frozen=True, slots=True)
class RouteWaypoint:
    name: str
    order: int = 0
    latitude: float | None = None
    longitude: float | None = None
    scheduled_time: str | None = None  # HH:MM

    @property
    def location(self) -> GeoPoint | None:
        if self.latitude is None or self.longitude is None:
            return None
        return GeoPoint(lat=self.latitude, lon=self.longitude)


@dataclass(frozen=True, slots=True)
class TrackedUnit:
    """A bus as seen by the tracking core (read-only reference data)."""

    unit_id: str
    driver_id: str | None = None
    label: str | None = None
    route_name: str | None = None
    route_details: str | None = None  # free-text "A -> B -> C"
    departure_time: str | None = None  # HH:MM
    available_today: bool = True
    waypoints: tuple[RouteWaypoint, ...] = field(default_factory=tuple)
