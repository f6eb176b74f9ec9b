from .events import PositionEvent, ResetEvent
from .geo import GeoPoint
from .progress import RouteProgress, StopProgress, StopStatus
from .tracking import CurrentPosition, RouteWaypoint, TrackedUnit

__all__ = [
    "CurrentPosition",
    "GeoPoint",
    "PositionEvent",
    "ResetEvent",
    "RouteProgress",
    "RouteWaypoint",
    "StopProgress",
    "StopStatus",
    "TrackedUnit",
]
