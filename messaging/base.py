"""Publisher contracts shared by the Kafka and in-memory implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Ack:
    """Delivery confirmation for one published message."""

    topic: str
    partition: Optional[int] = None
    offset: Optional[int] = None


class Publisher(ABC):
    """Blocking publisher: ``publish`` returns once delivery is confirmed."""

    @abstractmethod
    def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        """Deliver ``payload`` to ``topic``.

        Raises:
            TransportError: if the message is rejected or not confirmed within
                ``timeout`` seconds.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the underlying client."""


class AsyncPublisher(ABC):
    """Non-blocking publisher; ``publish`` may be awaited by several tasks at once."""

    async def start(self) -> None:
        """Bind to the running event loop before the first publish."""

    @abstractmethod
    async def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        """Deliver ``payload`` to ``topic``, raising ``TransportError`` on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Drain outstanding deliveries and release the underlying client."""
