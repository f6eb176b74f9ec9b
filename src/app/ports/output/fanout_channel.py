from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping


class IChannelConnection(ABC):
    """One viewer transport (WebSocket, server-push stream, test listener)."""

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Stable identity for the life of the connection."""

    @abstractmethod
    def offer(self, message: Mapping[str, Any]) -> bool:
        """Enqueue without blocking; return False when the message was dropped."""


class IFanoutChannel(ABC):
    """Topic-keyed publish/subscribe; one topic per tracked unit."""

    @abstractmethod
    def connect(self, connection: IChannelConnection) -> None:
        """Register for topic-less broadcasts."""

    @abstractmethod
    def disconnect(self, connection: IChannelConnection) -> None:
        """Drop the connection from every topic and from broadcasts."""

    @abstractmethod
    def subscribe(self, topic: str, connection: IChannelConnection) -> None:
        raise NotImplementedError

    @abstractmethod
    def unsubscribe(self, topic: str, connection: IChannelConnection) -> None:
        raise NotImplementedError

    @abstractmethod
    def publish(self, topic: str, message: Mapping[str, Any]) -> int:
        """Deliver to subscribers of `topic` only; return the delivered count."""

    @abstractmethod
    def broadcast(self, message: Mapping[str, Any]) -> int:
        """Deliver to every connected connection regardless of topic."""
