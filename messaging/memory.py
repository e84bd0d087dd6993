from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from messaging.base import Ack, AsyncPublisher, Publisher
from models.errors import TransportError


@dataclass(frozen=True, slots=True)
class PublishedMessage:
    topic: str
    payload: str
    offset: int


class MessageLog:
    """Thread-safe record of published messages, optionally mirrored to JSON Lines."""

    def __init__(self, record_path: Optional[Path] = None) -> None:
        self._messages: List[PublishedMessage] = []
        self._offsets: Dict[str, int] = {}
        self.record_path = record_path
        self._lock = Lock()
        if record_path:
            record_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, topic: str, payload: bytes) -> PublishedMessage:
        with self._lock:
            offset = self._offsets.get(topic, 0)
            message = PublishedMessage(
                topic=topic, payload=payload.decode("utf-8"), offset=offset
            )
            if self.record_path:
                try:
                    with self.record_path.open("a", encoding="utf-8") as handle:
                        handle.write(json.dumps(asdict(message)) + "\n")
                except OSError as exc:
                    raise TransportError(
                        f"Failed to record message to {self.record_path}: {exc}"
                    ) from exc
            self._offsets[topic] = offset + 1
            self._messages.append(message)
            return message

    def messages(self, topic: Optional[str] = None) -> List[PublishedMessage]:
        with self._lock:
            if topic is None:
                return list(self._messages)
            return [message for message in self._messages if message.topic == topic]

    def _load_from_disk(self) -> None:
        if not self.record_path or not self.record_path.exists():
            return

        with self.record_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    message = PublishedMessage(**json.loads(line))
                except (json.JSONDecodeError, TypeError):
                    continue
                self._messages.append(message)
                self._offsets[message.topic] = max(
                    self._offsets.get(message.topic, 0), message.offset + 1
                )


class MemoryPublisher(Publisher):
    """Publisher that records messages locally instead of contacting a broker."""

    def __init__(self, log: Optional[MessageLog] = None) -> None:
        self.log = log if log is not None else MessageLog()
        self.closed = False

    def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        message = self.log.append(topic, payload)
        return Ack(topic=topic, partition=0, offset=message.offset)

    def close(self) -> None:
        self.closed = True


class AsyncMemoryPublisher(AsyncPublisher):

    def __init__(self, log: Optional[MessageLog] = None) -> None:
        self.log = log if log is not None else MessageLog()
        self.closed = False

    async def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        await asyncio.sleep(0)
        message = self.log.append(topic, payload)
        return Ack(topic=topic, partition=0, offset=message.offset)

    async def close(self) -> None:
        self.closed = True
