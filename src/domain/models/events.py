from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .tracking import CurrentPosition

LOCATION_UPDATE = "location-update"
TRACKING_RESET = "tracking-reset"


@dataclass(frozen=True, slots=True)
class PositionEvent:
    unit_id: str
    latitude: float
    longitude: float
    timestamp: datetime

    @classmethod
    def from_position(cls, unit_id: str, position: CurrentPosition) -> "PositionEvent":
        return cls(
            unit_id=unit_id,
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=position.captured_at,
        )

    def to_message(self) -> dict[str, Any]:
        return {
            "type": LOCATION_UPDATE,
            "unit_id": self.unit_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class ResetEvent:
    message: str = "Tracking data has been reset for the day"

    def to_message(self) -> dict[str, Any]:
        return {"type": TRACKING_RESET, "message": self.message}
