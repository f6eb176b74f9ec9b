from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from src.app.ports.output import ITrackingApi
from src.domain.models import CurrentPosition, GeoPoint

logger = logging.getLogger(__name__)

LocationSource = Callable[[], Awaitable[GeoPoint]]


@dataclass(slots=True)
class DriverLocationReporter:
    """Pushes a driver's device position to the server.

    Capturing a fix and sending it run on separate cadences: the capture loop
    keeps the latest fix, the send loop posts whatever is latest. A failed send
    is logged and the next tick tries again with the freshest fix.

    Env vars:
      - TRACKING_CAPTURE_INTERVAL_S (default 10)
      - TRACKING_SEND_INTERVAL_S (default 10)
    """

    api: ITrackingApi
    location_source: LocationSource
    capture_interval_s: float = 10.0
    send_interval_s: float = 10.0

    last_fix: GeoPoint | None = field(default=None, init=False)
    last_sent: CurrentPosition | None = field(default=None, init=False)
    last_error: str | None = field(default=None, init=False)
    sent_count: int = field(default=0, init=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if os.getenv("TRACKING_CAPTURE_INTERVAL_S"):
            self.capture_interval_s = float(os.environ["TRACKING_CAPTURE_INTERVAL_S"])
        if os.getenv("TRACKING_SEND_INTERVAL_S"):
            self.send_interval_s = float(os.environ["TRACKING_SEND_INTERVAL_S"])

    @property
    def is_tracking(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def capture_once(self) -> GeoPoint | None:
        try:
            self.last_fix = await self.location_source()
        except Exception as exc:
            self.last_error = f"capture failed: {exc}"
            logger.warning("Location capture failed: %s", exc)
            return None
        return self.last_fix

    async def send_once(self) -> CurrentPosition | None:
        fix = self.last_fix
        if fix is None:
            return None
        try:
            stored = await self.api.post_location(latitude=fix.lat, longitude=fix.lon)
        except Exception as exc:
            self.last_error = f"send failed: {exc}"
            logger.warning("Sending location failed: %s", exc)
            return None
        if stored is None:
            logger.info("Server discarded a fix taken before the daily reset")
            self.last_error = None
            return None
        self.last_sent = stored
        self.last_error = None
        self.sent_count += 1
        return stored

    async def start(self) -> None:
        if self.is_tracking:
            logger.info("Already tracking location")
            return

        # Initial fix goes out immediately.
        await self.capture_once()
        await self.send_once()

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._every(self.capture_interval_s, self.capture_once)),
            loop.create_task(self._every(self.send_interval_s, self.send_once)),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for t in tasks:
            t.cancel()
        for t in tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
        self.last_fix = None

    def status(self) -> dict[str, Any]:
        return {
            "is_tracking": self.is_tracking,
            "last_fix": (
                {"lat": self.last_fix.lat, "lon": self.last_fix.lon}
                if self.last_fix
                else None
            ),
            "sent_count": self.sent_count,
            "last_error": self.last_error,
        }

    @staticmethod
    async def _every(interval_s: float, step: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval_s)
            await step()
