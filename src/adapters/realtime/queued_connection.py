from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping
from uuid import uuid4

from src.app.ports.output import IChannelConnection

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class QueuedConnection(IChannelConnection):
    """Connection backed by a bounded asyncio queue.

    Publishing only enqueues; the transport (WebSocket sender, SSE generator)
    drains the queue at its own pace, one message at a time, so per-connection
    order matches publish order. A full queue drops the new message.
    """

    max_queue: int = 100
    label: str = ""
    _id: str = field(default_factory=lambda: uuid4().hex, init=False)
    queue: asyncio.Queue[Mapping[str, Any]] = field(init=False, repr=False)
    dropped: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.queue = asyncio.Queue(maxsize=max(1, self.max_queue))

    @property
    def connection_id(self) -> str:
        return self._id

    def offer(self, message: Mapping[str, Any]) -> bool:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Outbound queue full for connection %s%s; dropped message",
                self._id,
                f" ({self.label})" if self.label else "",
            )
            return False
        return True

    async def next_message(self, timeout_s: float | None = None) -> Mapping[str, Any] | None:
        """Wait for the next message; None when `timeout_s` elapses first."""

        if timeout_s is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout_s)
        except asyncio.TimeoutError:
            return None
