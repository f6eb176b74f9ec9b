from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.app.ports.output import IPositionStore
from src.domain.models import CurrentPosition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class InMemoryPositionStore(IPositionStore):
    """Per-process position store; the default when no table is configured.

    Runs on the event loop thread only, so every operation is atomic. Writes
    captured before the last reset watermark are discarded, which keeps an
    ingest that raced a reset from resurrecting its position.
    """

    clock: Callable[[], datetime] = field(default=_utcnow)
    _positions: dict[str, CurrentPosition] = field(default_factory=dict, init=False)
    _reset_at: datetime | None = field(default=None, init=False)

    async def get(self, unit_id: str) -> CurrentPosition | None:
        return self._positions.get(unit_id)

    async def set(self, unit_id: str, position: CurrentPosition) -> bool:
        if self._reset_at is not None and position.captured_at < self._reset_at:
            return False
        self._positions[unit_id] = position
        return True

    async def clear_all(self) -> None:
        self._reset_at = self.clock()
        self._positions = {}
