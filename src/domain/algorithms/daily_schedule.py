from __future__ import annotations

from datetime import datetime, time, timedelta

DEFAULT_RESET_TIME = time(hour=10, minute=0)


def parse_time_of_day(raw: str | None, default: time = DEFAULT_RESET_TIME) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS'); blank means `default`."""

    value = (raw or "").strip()
    if not value:
        return default
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day: {raw!r}") from exc


def next_fire_time(now: datetime, fire_at: time = DEFAULT_RESET_TIME) -> datetime:
    """Next occurrence of `fire_at` strictly after `now` (same tzinfo as `now`)."""

    candidate = now.replace(
        hour=fire_at.hour,
        minute=fire_at.minute,
        second=fire_at.second,
        microsecond=0,
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    return max(0.0, (target - now).total_seconds())
