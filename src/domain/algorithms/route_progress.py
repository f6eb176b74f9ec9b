from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta

from src.domain.algorithms.geo_utils import haversine_distance_km
from src.domain.models import (
    CurrentPosition,
    RouteProgress,
    RouteWaypoint,
    StopProgress,
    StopStatus,
    TrackedUnit,
)

DEFAULT_PROXIMITY_KM = 0.2
DEFAULT_AVG_SPEED_KMH = 25.0
DEFAULT_MINUTES_PER_STOP = 7.0
DEFAULT_DEPARTURE = "08:00"

# "A -> B", "A → B", "A ➔ B", "A ➜ B"
STOP_SEPARATOR = re.compile(r"→|->|➔|➜")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def eta_minutes_for(distance_km: float, avg_speed_kmh: float) -> int:
    if avg_speed_kmh <= 0:
        raise ValueError(f"Invalid average speed: {avg_speed_kmh}")
    return _round_half_up(distance_km / avg_speed_kmh * 60.0)


def sort_waypoints(waypoints: Sequence[RouteWaypoint]) -> list[RouteWaypoint]:
    # sorted() is stable, so equal orders keep insertion order.
    return sorted(waypoints, key=lambda wp: wp.order or 0)


def _nearest_waypoint(
    waypoints: Sequence[RouteWaypoint], position: CurrentPosition
) -> tuple[int | None, float | None]:
    best_i: int | None = None
    best_d = float("inf")
    here = position.point
    for i, wp in enumerate(waypoints):
        loc = wp.location
        if loc is None:
            continue
        d = haversine_distance_km(here, loc)
        if d < best_d:
            best_d = d
            best_i = i
    if best_i is None:
        return None, None
    return best_i, best_d


def _chain_distance_km(waypoints: Sequence[RouteWaypoint], start: int, end: int) -> float:
    total = 0.0
    for i in range(start, end):
        a = waypoints[i].location
        b = waypoints[i + 1].location
        if a is None or b is None:
            continue
        total += haversine_distance_km(a, b)
    return total


def derive_route_progress(
    waypoints: Sequence[RouteWaypoint],
    position: CurrentPosition | None,
    *,
    now: datetime,
    arrivals: Mapping[str, datetime] | None = None,
    proximity_km: float = DEFAULT_PROXIMITY_KM,
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
) -> RouteProgress:
    """Classify every waypoint as passed/current/upcoming relative to `position`.

    The nearest geolocated waypoint is the match; waypoints before it are passed,
    the match itself is current only within `proximity_km`, the rest are upcoming
    with an ETA along the waypoint chain at `avg_speed_kmh`.

    `arrivals` maps waypoint names to actual arrival times. A recorded arrival is
    displayed as REACHED and replaces the computed ETA.
    """

    ordered = sort_waypoints(waypoints)
    if not ordered:
        return RouteProgress()

    arrivals = arrivals or {}
    last = len(ordered) - 1

    nearest_i: int | None = None
    nearest_d: float | None = None
    if position is not None:
        nearest_i, nearest_d = _nearest_waypoint(ordered, position)

    stops: list[StopProgress] = []
    for i, wp in enumerate(ordered):
        name = wp.name or f"Stop {i + 1}"
        eta_minutes: int | None = None
        distance_km = 0.0

        if nearest_i is None or wp.location is None:
            geometric = StopStatus.UPCOMING
        elif i < nearest_i:
            geometric = StopStatus.PASSED
        elif i == nearest_i and nearest_d is not None and nearest_d < proximity_km:
            geometric = StopStatus.CURRENT
            eta_minutes = 0
        else:
            geometric = StopStatus.UPCOMING
            distance_km = _chain_distance_km(ordered, nearest_i, i)
            eta_minutes = eta_minutes_for(distance_km, avg_speed_kmh)

        arrived_at = arrivals.get(wp.name) if wp.name else None
        status = StopStatus.REACHED if arrived_at is not None else geometric
        if arrived_at is not None:
            eta_minutes = None

        stops.append(
            StopProgress(
                index=i,
                name=name,
                status=status,
                geometric_status=geometric,
                is_start=i == 0,
                is_end=i == last,
                eta_minutes=eta_minutes,
                eta_at=(
                    now + timedelta(minutes=eta_minutes)
                    if eta_minutes is not None
                    else None
                ),
                distance_km=distance_km,
                arrived_at=arrived_at,
                scheduled_time=wp.scheduled_time,
            )
        )

    return RouteProgress(
        stops=tuple(stops),
        nearest_index=nearest_i,
        nearest_distance_km=nearest_d,
        started=position is not None,
    )


def split_route_details(route_details: str | None) -> list[str]:
    if not route_details:
        return []
    return [s.strip() for s in STOP_SEPARATOR.split(route_details) if s.strip()]


def _parse_departure(raw: str | None, now: datetime) -> datetime:
    hours, minutes = 8, 0
    try:
        hh, mm = (raw or DEFAULT_DEPARTURE).strip().split(":")[:2]
        hours = int(hh) if 0 < int(hh) < 24 else 8
        minutes = int(mm) if 0 <= int(mm) < 60 else 0
    except ValueError:
        pass
    return now.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def derive_schedule_progress(
    route_details: str | None,
    departure_time: str | None,
    *,
    has_position: bool,
    now: datetime,
    minutes_per_stop: float = DEFAULT_MINUTES_PER_STOP,
) -> RouteProgress:
    """Estimate progress for routes without geolocated waypoints.

    Stops come from the free-text route description; each is scheduled
    `minutes_per_stop` after the previous one, starting at the departure time.
    Without a live position the unit has not started and every stop is upcoming.
    """

    names = split_route_details(route_details)
    if not names:
        return RouteProgress()

    base = _parse_departure(departure_time, now)
    last = len(names) - 1

    current_i: int | None = None
    if has_position:
        elapsed_min = (now - base).total_seconds() / 60.0
        current_i = max(0, min(last, math.floor(elapsed_min / minutes_per_stop)))

    stops: list[StopProgress] = []
    for i, name in enumerate(names):
        scheduled = base + timedelta(minutes=i * minutes_per_stop)
        if current_i is None or i > current_i:
            status = StopStatus.UPCOMING
        elif i < current_i:
            status = StopStatus.PASSED
        else:
            status = StopStatus.CURRENT

        eta_minutes = None
        if status != StopStatus.PASSED:
            eta_minutes = max(0, _round_half_up((scheduled - now).total_seconds() / 60.0))

        stops.append(
            StopProgress(
                index=i,
                name=name,
                status=status,
                geometric_status=status,
                is_start=i == 0,
                is_end=i == last,
                eta_minutes=eta_minutes,
                eta_at=scheduled,
                scheduled_time=scheduled.strftime("%H:%M"),
            )
        )

    return RouteProgress(
        stops=tuple(stops),
        nearest_index=current_i,
        started=has_position,
    )


def derive_unit_progress(
    unit: TrackedUnit,
    position: CurrentPosition | None,
    *,
    now: datetime,
    arrivals: Mapping[str, datetime] | None = None,
    proximity_km: float = DEFAULT_PROXIMITY_KM,
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
    minutes_per_stop: float = DEFAULT_MINUTES_PER_STOP,
) -> RouteProgress:
    """Pick the geometric deriver when any waypoint is geolocated, else the schedule."""

    has_coordinates = any(wp.location is not None for wp in unit.waypoints)
    if not has_coordinates and split_route_details(unit.route_details):
        return derive_schedule_progress(
            unit.route_details,
            unit.departure_time,
            has_position=position is not None,
            now=now,
            minutes_per_stop=minutes_per_stop,
        )

    return derive_route_progress(
        unit.waypoints,
        position,
        now=now,
        arrivals=arrivals,
        proximity_km=proximity_km,
        avg_speed_kmh=avg_speed_kmh,
    )
