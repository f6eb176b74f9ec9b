from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.app.ports.output import ITrackingApi, TrackingApiError, TransportClosed
from src.domain.algorithms.route_progress import derive_unit_progress
from src.domain.models import CurrentPosition, RouteProgress, TrackedUnit
from src.domain.models.events import LOCATION_UPDATE, TRACKING_RESET

logger = logging.getLogger(__name__)

# Ends every `updates()` iterator; distinct from None, which means "reset".
_END = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViewerState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    STALE = "stale"
    OFFLINE = "offline"
    FAILED = "failed"
    CLOSED = "closed"


def _position_from_message(message: Mapping[str, Any]) -> CurrentPosition | None:
    try:
        raw_ts = message.get("timestamp")
        ts = datetime.fromisoformat(raw_ts) if isinstance(raw_ts, str) else _utcnow()
        return CurrentPosition(
            latitude=float(message["latitude"]),
            longitude=float(message["longitude"]),
            captured_at=ts,
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Ignoring malformed position message: %r", message)
        return None


@dataclass(slots=True)
class ViewerSession:
    """Client-side subscription to one tracked unit.

    `open()` follows the server-push stream and seeds the position with a point
    lookup once the stream is subscribed, on the first connection and after every
    reconnect, since the channel keeps no backlog. After a transport loss the
    session reports OFFLINE and reconnects with bounded backoff. A 401, 403 or 404
    from the stream is not retried: the session stops in FAILED with `last_error` set.

    `updates()` yields the held position after every change (None after a daily
    reset). An iterator taken before `open()` waits for it; `close()` ends it.
    """

    api: ITrackingApi
    stale_after_s: float = 30.0
    reconnect_initial_s: float = 1.0
    reconnect_max_s: float = 30.0
    clock: Callable[[], datetime] = field(default=_utcnow)

    unit_id: str | None = field(default=None, init=False)
    position: CurrentPosition | None = field(default=None, init=False)
    last_fresh_at: datetime | None = field(default=None, init=False)
    connected: bool = field(default=False, init=False)
    last_error: str | None = field(default=None, init=False)
    _failed: bool = field(default=False, init=False)
    _lost: bool = field(default=False, init=False)
    _closed: bool = field(default=True, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _watchers: list[asyncio.Queue[Any]] = field(
        default_factory=list, init=False, repr=False
    )

    def __post_init__(self) -> None:
        if os.getenv("TRACKING_STALE_AFTER_S"):
            self.stale_after_s = float(os.environ["TRACKING_STALE_AFTER_S"])

    @property
    def state(self) -> ViewerState:
        if self.unit_id is None:
            return ViewerState.IDLE
        if self._failed:
            return ViewerState.FAILED
        if self._closed:
            return ViewerState.CLOSED
        if not self.connected:
            return ViewerState.OFFLINE if self._lost else ViewerState.CONNECTING
        if self.is_stale():
            return ViewerState.STALE
        return ViewerState.LIVE

    def is_stale(self, now: datetime | None = None) -> bool:
        if self.last_fresh_at is None:
            return True
        now = now or self.clock()
        return (now - self.last_fresh_at).total_seconds() > self.stale_after_s

    async def open(self, unit_id: str) -> None:
        if self.unit_id is not None and not self._closed:
            if self.unit_id == unit_id:
                return
            await self.close()

        self.unit_id = unit_id
        self.position = None
        self.last_fresh_at = None
        self.connected = False
        self.last_error = None
        self._lost = False
        self._failed = False
        self._closed = False

        self._task = asyncio.get_running_loop().create_task(
            self._follow(unit_id), name=f"viewer-session-{unit_id}"
        )

    async def close(self) -> None:
        self._closed = True
        self._failed = False
        self.connected = False
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._end_watchers()

    async def updates(self) -> AsyncIterator[CurrentPosition | None]:
        q: asyncio.Queue[Any] = asyncio.Queue()
        self._watchers.append(q)
        try:
            while True:
                item = await q.get()
                if item is _END:
                    return
                yield item
        finally:
            self._watchers.remove(q)

    def progress(self, unit: TrackedUnit, **kwargs: Any) -> RouteProgress:
        # Schedule times are local time-of-day strings.
        now = self.clock().astimezone()
        return derive_unit_progress(unit, self.position, now=now, **kwargs)

    def _emit(self, position: CurrentPosition | None) -> None:
        self.position = position
        self.last_fresh_at = self.clock()
        for q in self._watchers:
            q.put_nowait(position)

    def _end_watchers(self) -> None:
        for q in self._watchers:
            q.put_nowait(_END)

    async def _seed(self, unit_id: str) -> None:
        try:
            position = await self.api.get_position(unit_id)
        except Exception:
            logger.warning("Point lookup failed for unit %s", unit_id, exc_info=True)
            return
        self._emit(position)

    def _handle(self, message: Mapping[str, Any]) -> None:
        kind = message.get("type")
        if kind == LOCATION_UPDATE:
            if message.get("unit_id") not in (None, self.unit_id):
                return
            position = _position_from_message(message)
            if position is not None:
                self._emit(position)
        elif kind == TRACKING_RESET:
            logger.info("Tracking reset received: %s", message.get("message"))
            self._emit(None)

    async def _follow(self, unit_id: str) -> None:
        delay = self.reconnect_initial_s
        while not self._closed:
            try:
                async for message in self.api.stream_events(unit_id):
                    if not self.connected:
                        # Subscribed: anything published from here on reaches us,
                        # so the lookup cannot miss an update.
                        self.connected = True
                        self._lost = False
                        delay = self.reconnect_initial_s
                        await self._seed(unit_id)
                    self._handle(message)
                raise TransportClosed("stream ended")
            except asyncio.CancelledError:
                raise
            except TrackingApiError as exc:
                if not exc.permanent:
                    await self._backoff(unit_id, exc, delay)
                    delay = min(self.reconnect_max_s, delay * 2)
                    continue
                logger.error("Stream for unit %s refused: %s", unit_id, exc)
                self.connected = False
                self.last_error = str(exc)
                self._failed = True
                self._closed = True
                self._end_watchers()
                return
            except Exception as exc:
                await self._backoff(unit_id, exc, delay)
                delay = min(self.reconnect_max_s, delay * 2)

    async def _backoff(self, unit_id: str, exc: Exception, delay: float) -> None:
        self.connected = False
        self._lost = True
        self.last_error = str(exc)
        if self._closed:
            return
        logger.warning(
            "Stream for unit %s lost (%s); reconnecting in %.1fs", unit_id, exc, delay
        )
        await asyncio.sleep(delay)
