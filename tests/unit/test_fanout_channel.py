from __future__ import annotations

from typing import Any, Mapping

from src.adapters.realtime.in_memory_fanout_channel import InMemoryFanoutChannel
from src.adapters.realtime.queued_connection import QueuedConnection
from src.app.ports.output import IChannelConnection


class ExplodingConnection(IChannelConnection):
    @property
    def connection_id(self) -> str:
        return "boom"

    def offer(self, message: Mapping[str, Any]) -> bool:
        raise RuntimeError("socket gone")


def _drain(conn: QueuedConnection) -> list[Mapping[str, Any]]:
    out = []
    while not conn.queue.empty():
        out.append(conn.queue.get_nowait())
    return out


def test_publish_reaches_only_topic_subscribers() -> None:
    channel = InMemoryFanoutChannel()
    a, b, idle = QueuedConnection(), QueuedConnection(), QueuedConnection()
    channel.subscribe("bus-1", a)
    channel.subscribe("bus-2", b)
    channel.connect(idle)

    delivered = channel.publish("bus-1", {"n": 1})

    assert delivered == 1
    assert _drain(a) == [{"n": 1}]
    assert _drain(b) == []
    assert _drain(idle) == []


def test_publish_preserves_order_per_connection() -> None:
    channel = InMemoryFanoutChannel()
    conn = QueuedConnection()
    channel.subscribe("bus-1", conn)

    for n in range(5):
        channel.publish("bus-1", {"n": n})

    assert [m["n"] for m in _drain(conn)] == [0, 1, 2, 3, 4]


def test_broadcast_reaches_every_connection_regardless_of_topic() -> None:
    channel = InMemoryFanoutChannel()
    a, b, idle = QueuedConnection(), QueuedConnection(), QueuedConnection()
    channel.subscribe("bus-1", a)
    channel.subscribe("bus-2", b)
    channel.connect(idle)

    assert channel.broadcast({"type": "tracking-reset"}) == 3
    assert all(_drain(c) == [{"type": "tracking-reset"}] for c in (a, b, idle))


def test_failed_connection_does_not_block_others() -> None:
    channel = InMemoryFanoutChannel()
    good = QueuedConnection()
    channel.subscribe("bus-1", ExplodingConnection())
    channel.subscribe("bus-1", good)

    assert channel.publish("bus-1", {"n": 1}) == 1
    assert _drain(good) == [{"n": 1}]


def test_full_queue_drops_message() -> None:
    channel = InMemoryFanoutChannel()
    conn = QueuedConnection(max_queue=1)
    channel.subscribe("bus-1", conn)

    assert channel.publish("bus-1", {"n": 1}) == 1
    assert channel.publish("bus-1", {"n": 2}) == 0
    assert conn.dropped == 1


def test_unsubscribe_and_disconnect() -> None:
    channel = InMemoryFanoutChannel()
    conn = QueuedConnection()
    channel.subscribe("bus-1", conn)
    channel.subscribe("bus-2", conn)

    channel.unsubscribe("bus-1", conn)
    assert channel.subscriber_count("bus-1") == 0
    assert channel.subscriber_count("bus-2") == 1

    channel.disconnect(conn)
    assert channel.subscriber_count("bus-2") == 0
    assert channel.connection_count == 0
    assert channel.broadcast({"x": 1}) == 0


def test_no_backlog_for_late_subscribers() -> None:
    channel = InMemoryFanoutChannel()
    channel.publish("bus-1", {"n": 1})

    late = QueuedConnection()
    channel.subscribe("bus-1", late)
    assert _drain(late) == []
