from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends
from fastapi.requests import HTTPConnection

from src.adapters.api.auth import Principal, bearer_token, decode_token
from src.adapters.persistence import (
    DynamoDbPositionStore,
    InMemoryPositionStore,
    LocalFleetRepository,
)
from src.adapters.realtime.in_memory_fanout_channel import InMemoryFanoutChannel
from src.adapters.settings import TrackingSettings
from src.app.ports.output import IFanoutChannel, IFleetDirectory, IPositionStore
from src.app.services.daily_reset_scheduler import DailyResetScheduler
from src.app.services.location_ingest_service import LocationIngestService
from src.app.services.route_progress_service import RouteProgressService
from src.domain.exceptions import ForbiddenError


@dataclass(slots=True)
class TrackingContainer:
    """Composition root: one channel instance shared by ingest and scheduler."""

    settings: TrackingSettings
    position_store: IPositionStore
    fleet_directory: IFleetDirectory
    channel: IFanoutChannel
    ingest_service: LocationIngestService
    progress_service: RouteProgressService
    scheduler: DailyResetScheduler


def build_container(
    settings: TrackingSettings | None = None,
    *,
    position_store: IPositionStore | None = None,
    fleet_directory: IFleetDirectory | None = None,
    channel: IFanoutChannel | None = None,
) -> TrackingContainer:
    settings = settings or TrackingSettings.from_env()

    if position_store is None:
        if settings.positions_table:
            position_store = DynamoDbPositionStore(table_name=settings.positions_table)
        else:
            position_store = InMemoryPositionStore()
    if fleet_directory is None:
        fleet_directory = LocalFleetRepository(path=settings.fleet_path)
    if channel is None:
        channel = InMemoryFanoutChannel()

    ingest = LocationIngestService(
        position_store=position_store,
        fleet_directory=fleet_directory,
        channel=channel,
        write_timeout_s=settings.write_timeout_s,
    )
    progress = RouteProgressService(
        fleet_directory=fleet_directory,
        ingest_service=ingest,
        proximity_km=settings.proximity_km,
        avg_speed_kmh=settings.avg_speed_kmh,
        minutes_per_stop=settings.minutes_per_stop,
    )
    scheduler = DailyResetScheduler(
        position_store=position_store,
        channel=channel,
        fire_at=settings.reset_time,
    )

    return TrackingContainer(
        settings=settings,
        position_store=position_store,
        fleet_directory=fleet_directory,
        channel=channel,
        ingest_service=ingest,
        progress_service=progress,
        scheduler=scheduler,
    )


def get_container(conn: HTTPConnection) -> TrackingContainer:
    return conn.app.state.container


def get_ingest_service(
    container: TrackingContainer = Depends(get_container),
) -> LocationIngestService:
    return container.ingest_service


def get_progress_service(
    container: TrackingContainer = Depends(get_container),
) -> RouteProgressService:
    return container.progress_service


def get_principal(
    conn: HTTPConnection,
    container: TrackingContainer = Depends(get_container),
) -> Principal:
    # Browsers cannot set headers on EventSource/WebSocket, so accept ?token= too.
    token = bearer_token(conn.headers.get("authorization")) or conn.query_params.get(
        "token"
    )
    return decode_token(
        token,
        secret=container.settings.jwt_secret,
        algorithm=container.settings.jwt_algorithm,
    )


def require_role(*roles: str) -> Callable[..., Principal]:
    def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError(f"Role {principal.role!r} not allowed")
        return principal

    return _check
