from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum

from src.app.ports.output import IFanoutChannel, IPositionStore
from src.domain.algorithms.daily_schedule import (
    DEFAULT_RESET_TIME,
    next_fire_time,
    seconds_until,
)
from src.domain.models import ResetEvent

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"
    STOPPED = "stopped"


@dataclass(slots=True)
class DailyResetScheduler:
    """Clears every stored position once a day and tells all viewers.

    Idle -> Armed(next) -> Firing -> Armed(next + 24h) -> ...

    A failed cycle is logged and not retried; the next cycle is armed regardless.
    `clock` and `sleep` are injectable so tests can drive the machine without
    waiting on the wall clock.
    """

    position_store: IPositionStore
    channel: IFanoutChannel
    fire_at: time = DEFAULT_RESET_TIME
    clock: Callable[[], datetime] = field(default=datetime.now)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    state: SchedulerState = field(default=SchedulerState.IDLE, init=False)
    next_fire_at: datetime | None = field(default=None, init=False)
    last_fired_at: datetime | None = field(default=None, init=False)
    last_cycle_ok: bool | None = field(default=None, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def arm(self) -> datetime:
        now = self.clock()
        if self.next_fire_at is None:
            target = next_fire_time(now, self.fire_at)
        else:
            target = self.next_fire_at + timedelta(days=1)
            if target <= now:
                # Overslept (suspended host); skip missed cycles instead of replaying them.
                target = next_fire_time(now, self.fire_at)
        self.next_fire_at = target
        self.state = SchedulerState.ARMED
        logger.info("Daily tracking reset armed for %s", target.isoformat())
        return target

    async def fire(self) -> bool:
        """Run one reset cycle. Never raises; returns whether both steps succeeded."""

        self.state = SchedulerState.FIRING
        self.last_fired_at = self.clock()
        ok = True

        try:
            await self.position_store.clear_all()
        except Exception:
            ok = False
            logger.exception("Daily reset: clearing stored positions failed")

        try:
            reached = self.channel.broadcast(ResetEvent().to_message())
            logger.info("Daily reset broadcast sent to %d connection(s)", reached)
        except Exception:
            ok = False
            logger.exception("Daily reset: broadcast failed")

        self.last_cycle_ok = ok
        return ok

    async def run_forever(self) -> None:
        try:
            while True:
                target = self.arm()
                await self.sleep(seconds_until(target, self.clock()))
                await self.fire()
        finally:
            self.state = SchedulerState.STOPPED

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self.run_forever(), name="daily-tracking-reset"
            )
        return self._task

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
