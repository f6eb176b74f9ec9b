from __future__ import annotations

from fastapi import APIRouter, Depends

from src.adapters.api.auth import Principal
from src.adapters.api.dependencies import (
    get_ingest_service,
    get_principal,
    get_progress_service,
    require_role,
)
from src.adapters.api.schemas.location import (
    LocationUpdateSchema,
    PositionSchema,
    RouteProgressSchema,
    StopProgressSchema,
    UnitSchema,
    WaypointSchema,
)
from src.app.services.location_ingest_service import LocationIngestService
from src.app.services.route_progress_service import RouteProgressService
from src.domain.models import (
    CurrentPosition,
    RouteProgress,
    StopProgress,
    StopStatus,
    TrackedUnit,
)

router = APIRouter(prefix="/bus", tags=["location"])


def _position_to_schema(unit_id: str, position: CurrentPosition) -> PositionSchema:
    return PositionSchema(
        unit_id=unit_id,
        latitude=position.latitude,
        longitude=position.longitude,
        timestamp=position.captured_at,
    )


def _unit_to_schema(unit: TrackedUnit) -> UnitSchema:
    return UnitSchema(
        unit_id=unit.unit_id,
        label=unit.label,
        route_name=unit.route_name,
        route_details=unit.route_details,
        departure_time=unit.departure_time,
        available_today=unit.available_today,
        waypoints=[
            WaypointSchema(
                name=wp.name,
                order=wp.order,
                latitude=wp.latitude,
                longitude=wp.longitude,
                scheduled_time=wp.scheduled_time,
            )
            for wp in unit.waypoints
        ],
    )


def _stop_to_schema(stop: StopProgress) -> StopProgressSchema:
    if stop.arrived_at is not None:
        shown = stop.arrived_at
    elif stop.status == StopStatus.PASSED:
        shown = None
    else:
        shown = stop.eta_at
    return StopProgressSchema(
        index=stop.index,
        name=stop.name,
        status=stop.status.value,
        is_start=stop.is_start,
        is_end=stop.is_end,
        eta_minutes=stop.eta_minutes,
        eta_at=stop.eta_at,
        time=shown.strftime("%H:%M") if shown else "--:--",
        distance_km=round(stop.distance_km, 3),
        arrived_at=stop.arrived_at,
        scheduled_time=stop.scheduled_time,
    )


def _progress_to_schema(
    unit: TrackedUnit, position: CurrentPosition | None, progress: RouteProgress
) -> RouteProgressSchema:
    return RouteProgressSchema(
        unit_id=unit.unit_id,
        label=unit.label,
        route_name=unit.route_name,
        started=progress.started,
        position=_position_to_schema(unit.unit_id, position) if position else None,
        stops=[_stop_to_schema(s) for s in progress.stops],
        current_index=progress.current_index,
        completed_stops=progress.completed_stops,
        total_stops=progress.total_stops,
        fraction_complete=round(progress.fraction_complete, 4),
        eta_minutes=progress.eta_minutes,
        eta_at=progress.eta_at,
    )


@router.post("/location", response_model=PositionSchema | None)
async def update_location(
    req: LocationUpdateSchema,
    principal: Principal = Depends(require_role("driver")),
    service: LocationIngestService = Depends(get_ingest_service),
) -> PositionSchema | None:
    unit, position = await service.ingest(
        driver_id=principal.user_id, latitude=req.latitude, longitude=req.longitude
    )
    if position is None:
        # Fix predates the daily reset; nothing was stored or published.
        return None
    return _position_to_schema(unit.unit_id, position)


@router.get("/today", response_model=list[UnitSchema])
def list_units_for_today(
    service: RouteProgressService = Depends(get_progress_service),
) -> list[UnitSchema]:
    return [_unit_to_schema(u) for u in service.list_units_for_today()]


@router.get("/{unit_id}/location", response_model=PositionSchema | None)
async def get_location(
    unit_id: str,
    _: Principal = Depends(get_principal),
    service: LocationIngestService = Depends(get_ingest_service),
) -> PositionSchema | None:
    position = await service.lookup(unit_id=unit_id)
    if position is None:
        return None
    return _position_to_schema(unit_id, position)


@router.get("/{unit_id}/progress", response_model=RouteProgressSchema)
async def get_progress(
    unit_id: str,
    _: Principal = Depends(get_principal),
    service: RouteProgressService = Depends(get_progress_service),
) -> RouteProgressSchema:
    unit, position, progress = await service.progress(unit_id=unit_id)
    return _progress_to_schema(unit, position, progress)
