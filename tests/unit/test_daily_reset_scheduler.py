from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

import pytest

from src.adapters.persistence.in_memory_position_store import InMemoryPositionStore
from src.adapters.realtime.in_memory_fanout_channel import InMemoryFanoutChannel
from src.adapters.realtime.queued_connection import QueuedConnection
from src.app.services.daily_reset_scheduler import DailyResetScheduler, SchedulerState
from src.domain.models import CurrentPosition


class _Stop(Exception):
    pass


@dataclass(slots=True)
class FakeClock:
    now: datetime
    sleeps: list[float] = field(default_factory=list)
    max_sleeps: int = 3

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) >= self.max_sleeps:
            raise _Stop()
        self.now += timedelta(seconds=seconds)


@dataclass(slots=True)
class FailingStore:
    clears: int = 0

    async def get(self, unit_id: str):
        return None

    async def set(self, unit_id: str, position) -> bool:
        return True

    async def clear_all(self) -> None:
        self.clears += 1
        raise ConnectionError("db down")


def test_arm_computes_first_and_following_fire_times() -> None:
    clock = FakeClock(now=datetime(2026, 10, 19, 9, 0))
    sched = DailyResetScheduler(
        position_store=InMemoryPositionStore(),
        channel=InMemoryFanoutChannel(),
        clock=clock,
    )
    assert sched.state == SchedulerState.IDLE

    assert sched.arm() == datetime(2026, 10, 19, 10, 0)
    assert sched.state == SchedulerState.ARMED

    clock.now = datetime(2026, 10, 19, 10, 0, 1)
    assert sched.arm() == datetime(2026, 10, 20, 10, 0)


def test_arm_skips_missed_cycles_after_oversleeping() -> None:
    clock = FakeClock(now=datetime(2026, 10, 19, 9, 0))
    sched = DailyResetScheduler(
        position_store=InMemoryPositionStore(),
        channel=InMemoryFanoutChannel(),
        clock=clock,
    )
    sched.arm()
    clock.now = datetime(2026, 10, 23, 12, 0)
    assert sched.arm() == datetime(2026, 10, 24, 10, 0)


@pytest.mark.anyio
async def test_fire_clears_positions_and_broadcasts() -> None:
    store = InMemoryPositionStore()
    await store.set(
        "bus-1",
        CurrentPosition(latitude=1.0, longitude=1.0, captured_at=datetime.now(timezone.utc)),
    )
    channel = InMemoryFanoutChannel()
    watcher, idle = QueuedConnection(), QueuedConnection()
    channel.subscribe("bus-1", watcher)
    channel.connect(idle)

    sched = DailyResetScheduler(position_store=store, channel=channel)
    assert await sched.fire() is True

    assert await store.get("bus-1") is None
    for conn in (watcher, idle):
        assert conn.queue.get_nowait()["type"] == "tracking-reset"


@pytest.mark.anyio
async def test_run_forever_fires_daily_at_configured_time() -> None:
    clock = FakeClock(now=datetime(2026, 10, 19, 9, 0))
    channel = InMemoryFanoutChannel()
    conn = QueuedConnection()
    channel.connect(conn)
    sched = DailyResetScheduler(
        position_store=InMemoryPositionStore(),
        channel=channel,
        fire_at=time(10, 0),
        clock=clock,
        sleep=clock.sleep,
    )

    with pytest.raises(_Stop):
        await sched.run_forever()

    assert clock.sleeps == [3600.0, 86400.0, 86400.0]
    assert conn.queue.qsize() == 2
    assert sched.state == SchedulerState.STOPPED


@pytest.mark.anyio
async def test_failed_clear_is_logged_and_next_cycle_still_armed(caplog) -> None:
    clock = FakeClock(now=datetime(2026, 10, 19, 11, 0))
    store = FailingStore()
    channel = InMemoryFanoutChannel()
    conn = QueuedConnection()
    channel.connect(conn)
    sched = DailyResetScheduler(
        position_store=store, channel=channel, clock=clock, sleep=clock.sleep
    )

    with pytest.raises(_Stop):
        await sched.run_forever()

    assert store.clears == 2
    assert sched.last_cycle_ok is False
    # Broadcast still goes out even when clearing failed.
    assert conn.queue.qsize() == 2
    assert "clearing stored positions failed" in caplog.text
