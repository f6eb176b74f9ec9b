from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.app.ports.output import IFanoutChannel, IFleetDirectory, IPositionStore
from src.domain.exceptions import InternalError, NotFoundError, ValidationError
from src.domain.models import CurrentPosition, PositionEvent, TrackedUnit

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_coordinates(latitude: object, longitude: object) -> tuple[float, float]:
    values: list[float] = []
    for label, raw, bound in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValidationError(f"{label} must be a number")
        value = float(raw)
        if not math.isfinite(value):
            raise ValidationError(f"{label} must be a finite number")
        if not (-bound <= value <= bound):
            raise ValidationError(f"{label} must be between {-bound:g} and {bound:g}")
        values.append(value)
    return values[0], values[1]


@dataclass(slots=True)
class LocationIngestService:
    """Driver location ingest and viewer point lookup.

    The fan-out channel is injected; every successful ingest publishes exactly
    one position event under the unit's topic, failed ingests publish nothing.
    """

    position_store: IPositionStore
    fleet_directory: IFleetDirectory
    channel: IFanoutChannel
    write_timeout_s: float = 5.0
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def ingest(
        self, *, driver_id: str, latitude: object, longitude: object
    ) -> tuple[TrackedUnit, CurrentPosition | None]:
        """Store and publish a driver fix.

        Returns the stored position, or None when the store refused it because a
        daily reset landed after the fix was taken. A refused fix is not published.
        """

        lat, lon = validate_coordinates(latitude, longitude)

        unit = self.fleet_directory.find_unit_by_driver(driver_id)
        if unit is None:
            raise NotFoundError("No bus assigned to this driver")

        position = CurrentPosition(latitude=lat, longitude=lon, captured_at=self.clock())
        try:
            accepted = await asyncio.wait_for(
                self.position_store.set(unit.unit_id, position),
                timeout=self.write_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Position write timed out after %.1fs for unit %s",
                self.write_timeout_s,
                unit.unit_id,
            )
            raise InternalError("Position store write timed out") from exc
        except Exception as exc:
            logger.exception("Position write failed for unit %s", unit.unit_id)
            raise InternalError(f"Position store write failed: {exc}") from exc

        if not accepted:
            logger.info(
                "Discarded position for unit %s captured before the last reset",
                unit.unit_id,
            )
            return unit, None

        delivered = self.channel.publish(
            unit.unit_id, PositionEvent.from_position(unit.unit_id, position).to_message()
        )
        logger.debug(
            "Ingested position for unit %s (%d subscriber(s))", unit.unit_id, delivered
        )
        return unit, position

    async def lookup(self, *, unit_id: str) -> CurrentPosition | None:
        if self.fleet_directory.get_unit(unit_id) is None:
            raise NotFoundError("Bus not found")
        try:
            return await self.position_store.get(unit_id)
        except Exception as exc:
            logger.exception("Position lookup failed for unit %s", unit_id)
            raise InternalError(f"Position store read failed: {exc}") from exc
