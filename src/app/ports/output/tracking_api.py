from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Mapping

from src.domain.models import CurrentPosition


class TransportClosed(Exception):
    """The server-push transport ended or failed."""


class TrackingApiError(Exception):
    """The server answered with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail

    @property
    def permanent(self) -> bool:
        # Retrying cannot fix a bad token, a missing role or an unknown unit.
        return self.status_code in (401, 403, 404)


class ITrackingApi(ABC):
    """Client-side port onto the tracking server."""

    @abstractmethod
    async def get_position(self, unit_id: str) -> CurrentPosition | None:
        """Point lookup; None when nothing was recorded since the last reset."""

    @abstractmethod
    async def post_location(
        self, *, latitude: float, longitude: float
    ) -> CurrentPosition | None:
        """Send a fix; None when the server discarded it after a daily reset."""

    @abstractmethod
    def stream_events(self, unit_id: str) -> AsyncIterator[Mapping[str, Any]]:
        """Yield decoded push messages for `unit_id`; raise TransportClosed on loss."""
