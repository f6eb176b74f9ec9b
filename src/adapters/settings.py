from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time

from src.domain.algorithms.daily_schedule import DEFAULT_RESET_TIME, parse_time_of_day
from src.domain.algorithms.route_progress import (
    DEFAULT_AVG_SPEED_KMH,
    DEFAULT_MINUTES_PER_STOP,
    DEFAULT_PROXIMITY_KM,
)

DEV_JWT_SECRET = "dev-only-change-me"


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True, slots=True)
class TrackingSettings:
    """Server-side knobs for the tracking core.

    Env vars:
      - TRACKING_ALLOWED_ORIGINS: comma-separated CORS origins (default: *)
      - JWT_SECRET, JWT_ALGORITHM (default HS256)
      - TRACKING_RESET_TIME (HH:MM, default 10:00), TRACKING_RESET_ENABLED
      - TRACKING_PROXIMITY_KM, TRACKING_AVG_SPEED_KMH, TRACKING_MINUTES_PER_STOP
      - TRACKING_WRITE_TIMEOUT_S, TRACKING_QUEUE_SIZE, TRACKING_STREAM_KEEPALIVE_S
      - DDB_POSITIONS_TABLE: use DynamoDB for positions when set
      - FLEET_PATH: fleet/route reference JSON (default data/fleet.json)
    """

    allowed_origins: tuple[str, ...] = ("*",)
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    reset_time: time = DEFAULT_RESET_TIME
    reset_enabled: bool = True
    proximity_km: float = DEFAULT_PROXIMITY_KM
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH
    minutes_per_stop: float = DEFAULT_MINUTES_PER_STOP
    write_timeout_s: float = 5.0
    queue_size: int = 100
    stream_keepalive_s: float = 15.0
    positions_table: str | None = None
    fleet_path: str = "data/fleet.json"

    @staticmethod
    def from_env() -> "TrackingSettings":
        return TrackingSettings(
            allowed_origins=_env_list("TRACKING_ALLOWED_ORIGINS", ("*",)),
            jwt_secret=os.getenv("JWT_SECRET") or DEV_JWT_SECRET,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            reset_time=parse_time_of_day(os.getenv("TRACKING_RESET_TIME")),
            reset_enabled=env_bool("TRACKING_RESET_ENABLED", True),
            proximity_km=env_float("TRACKING_PROXIMITY_KM", DEFAULT_PROXIMITY_KM),
            avg_speed_kmh=env_float("TRACKING_AVG_SPEED_KMH", DEFAULT_AVG_SPEED_KMH),
            minutes_per_stop=env_float(
                "TRACKING_MINUTES_PER_STOP", DEFAULT_MINUTES_PER_STOP
            ),
            write_timeout_s=env_float("TRACKING_WRITE_TIMEOUT_S", 5.0),
            queue_size=int(env_float("TRACKING_QUEUE_SIZE", 100)),
            stream_keepalive_s=env_float("TRACKING_STREAM_KEEPALIVE_S", 15.0),
            positions_table=(os.getenv("DDB_POSITIONS_TABLE") or "").strip() or None,
            fleet_path=os.getenv("FLEET_PATH") or "data/fleet.json",
        )
