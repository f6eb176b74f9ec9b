from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.app.ports.output import IFleetDirectory
from src.domain.models import RouteWaypoint, TrackedUnit


def _opt_float(raw: Any) -> float | None:
    if raw is None or raw == "":
        return None
    return float(raw)


def _parse_waypoint(raw: dict[str, Any], position: int) -> RouteWaypoint:
    order = raw.get("order")
    return RouteWaypoint(
        name=str(raw.get("name") or "").strip(),
        order=int(order) if order is not None else position,
        latitude=_opt_float(raw.get("latitude")),
        longitude=_opt_float(raw.get("longitude")),
        scheduled_time=(raw.get("scheduled_time") or "").strip() or None,
    )


def _parse_unit(raw: dict[str, Any]) -> TrackedUnit:
    route = raw.get("route") or {}
    waypoints = tuple(
        _parse_waypoint(wp, i) for i, wp in enumerate(route.get("waypoints") or [])
    )
    driver_id = raw.get("driver_id")
    return TrackedUnit(
        unit_id=str(raw["unit_id"]),
        driver_id=str(driver_id) if driver_id else None,
        label=raw.get("label"),
        route_name=route.get("name"),
        route_details=route.get("details"),
        departure_time=raw.get("departure_time"),
        available_today=bool(raw.get("available_today", True)),
        waypoints=waypoints,
    )


@dataclass(slots=True)
class LocalFleetRepository(IFleetDirectory):
    """Loads fleet/route reference data from a JSON document.

    Expected shape: {"units": [{"unit_id", "driver_id", "label", "departure_time",
    "available_today", "route": {"name", "details", "waypoints": [...]}}]}

    Env vars:
      - FLEET_PATH: path to the JSON file (default: data/fleet.json)

    A missing file yields an empty fleet.
    """

    path: str | Path | None = None
    _units: dict[str, TrackedUnit] | None = field(default=None, init=False, repr=False)

    def _path(self) -> Path:
        return Path(self.path or os.getenv("FLEET_PATH") or "data/fleet.json")

    def _load(self) -> dict[str, TrackedUnit]:
        if self._units is not None:
            return self._units

        path = self._path()
        units: dict[str, TrackedUnit] = {}
        if path.exists():
            with path.open("r", encoding="utf-8") as fp:
                doc = json.load(fp)
            for raw in doc.get("units") or []:
                if not raw.get("unit_id"):
                    continue
                unit = _parse_unit(raw)
                units[unit.unit_id] = unit

        self._units = units
        return units

    def find_unit_by_driver(self, driver_id: str) -> TrackedUnit | None:
        for unit in self._load().values():
            if unit.driver_id == driver_id:
                return unit
        return None

    def get_unit(self, unit_id: str) -> TrackedUnit | None:
        return self._load().get(unit_id)

    def list_units(self, *, available_only: bool = False) -> tuple[TrackedUnit, ...]:
        units = list(self._load().values())
        if available_only:
            units = [u for u in units if u.available_today]
        units.sort(key=lambda u: (u.label or "", u.unit_id))
        return tuple(units)
