from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from src.app.ports.output import IChannelConnection, IFanoutChannel

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InMemoryFanoutChannel(IFanoutChannel):
    """Process-local topic fan-out (one topic per tracked unit).

    Delivery is at-most-once and best-effort: a connection that fails or
    rejects a message is logged and skipped, other subscribers still receive it.
    No backlog is kept for connections that join later.
    """

    _topics: dict[str, dict[str, IChannelConnection]] = field(
        default_factory=dict, init=False, repr=False
    )
    _connections: dict[str, IChannelConnection] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, {}))

    def connect(self, connection: IChannelConnection) -> None:
        self._connections[connection.connection_id] = connection

    def disconnect(self, connection: IChannelConnection) -> None:
        cid = connection.connection_id
        self._connections.pop(cid, None)
        for topic in [t for t, subs in self._topics.items() if cid in subs]:
            self._remove(topic, cid)

    def subscribe(self, topic: str, connection: IChannelConnection) -> None:
        self.connect(connection)
        self._topics.setdefault(topic, {})[connection.connection_id] = connection

    def unsubscribe(self, topic: str, connection: IChannelConnection) -> None:
        self._remove(topic, connection.connection_id)

    def publish(self, topic: str, message: Mapping[str, Any]) -> int:
        # Snapshot so subscribers may leave while we deliver.
        return self._deliver(list(self._topics.get(topic, {}).values()), message)

    def broadcast(self, message: Mapping[str, Any]) -> int:
        return self._deliver(list(self._connections.values()), message)

    def _remove(self, topic: str, cid: str) -> None:
        subs = self._topics.get(topic)
        if subs is None:
            return
        subs.pop(cid, None)
        if not subs:
            del self._topics[topic]

    @staticmethod
    def _deliver(targets: list[IChannelConnection], message: Mapping[str, Any]) -> int:
        delivered = 0
        for conn in targets:
            try:
                if conn.offer(message):
                    delivered += 1
            except Exception:
                logger.exception("Delivery to connection %s failed", conn.connection_id)
        return delivered
