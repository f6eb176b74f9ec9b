from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class StopStatus(str, Enum):
    PASSED = "passed"
    CURRENT = "current"
    UPCOMING = "upcoming"
    REACHED = "reached"


@dataclass(frozen=True, slots=True)
class StopProgress:
    """Derived view of one stop; recomputed on every position event."""

    index: int
    name: str
    status: StopStatus
    # Classification used for progress counting; `status` may be REACHED instead.
    geometric_status: StopStatus
    is_start: bool = False
    is_end: bool = False
    eta_minutes: int | None = None
    eta_at: datetime | None = None
    distance_km: float = 0.0
    arrived_at: datetime | None = None
    scheduled_time: str | None = None


@dataclass(frozen=True, slots=True)
class RouteProgress:
    stops: tuple[StopProgress, ...] = field(default_factory=tuple)
    nearest_index: int | None = None
    nearest_distance_km: float | None = None
    started: bool = False

    @property
    def total_stops(self) -> int:
        return len(self.stops)

    @property
    def completed_stops(self) -> int:
        return sum(
            1
            for s in self.stops
            if s.arrived_at is not None or s.geometric_status == StopStatus.PASSED
        )

    @property
    def fraction_complete(self) -> float:
        if not self.stops:
            return 0.0
        return self.completed_stops / len(self.stops)

    @property
    def current_index(self) -> int | None:
        for s in self.stops:
            if s.geometric_status == StopStatus.CURRENT:
                return s.index
        return None

    @property
    def eta_minutes(self) -> int | None:
        """Headline ETA to the final stop."""
        return self.stops[-1].eta_minutes if self.stops else None

    @property
    def eta_at(self) -> datetime | None:
        return self.stops[-1].eta_at if self.stops else None
