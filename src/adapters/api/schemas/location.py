from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class LocationUpdateSchema(BaseModel):
    # Strict: JSON booleans and numeric strings are rejected, integers still pass.
    latitude: float = Field(..., strict=True, ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(
        ..., strict=True, ge=-180.0, le=180.0, allow_inf_nan=False
    )


class PositionSchema(BaseModel):
    unit_id: str | None = None
    latitude: float
    longitude: float
    timestamp: datetime


class WaypointSchema(BaseModel):
    name: str
    order: int
    latitude: float | None = None
    longitude: float | None = None
    scheduled_time: str | None = None


class UnitSchema(BaseModel):
    unit_id: str
    label: str | None = None
    route_name: str | None = None
    route_details: str | None = None
    departure_time: str | None = None
    available_today: bool = True
    waypoints: list[WaypointSchema] = []


class StopProgressSchema(BaseModel):
    index: int
    name: str
    status: str
    is_start: bool
    is_end: bool
    eta_minutes: int | None = None
    eta_at: datetime | None = None
    # "HH:MM" for display; "--:--" for passed stops.
    time: str
    distance_km: float = 0.0
    arrived_at: datetime | None = None
    scheduled_time: str | None = None


class RouteProgressSchema(BaseModel):
    unit_id: str
    label: str | None = None
    route_name: str | None = None
    started: bool
    position: PositionSchema | None = None
    stops: list[StopProgressSchema] = []
    current_index: int | None = None
    completed_stops: int = 0
    total_stops: int = 0
    fraction_complete: float = 0.0
    eta_minutes: int | None = None
    eta_at: datetime | None = None
