"""Kafka publishers built on confluent-kafka with TLS client credentials."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Mapping, Optional

from confluent_kafka import KafkaException, Producer

from messaging.base import Ack, AsyncPublisher, Publisher
from models.errors import TransportError
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_TIMEOUT = 5.0
DEFAULT_POLL_INTERVAL = 0.1


def build_producer_config(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Translate settings into a librdkafka configuration dictionary."""
    settings = settings or get_settings()
    return {
        "bootstrap.servers": settings.bootstrap_servers,
        "security.protocol": settings.security_protocol,
        "ssl.certificate.location": settings.ssl_cert_path,
        "ssl.key.location": settings.ssl_key_path,
        "ssl.ca.location": settings.ssl_ca_path,
        "ssl.endpoint.identification.algorithm": "https",
        "message.timeout.ms": str(settings.message_timeout_ms),
        "acks": settings.acks,
    }


def _create_producer(config: Optional[Mapping[str, Any]]) -> Producer:
    try:
        return Producer(dict(config or {}))
    except KafkaException as exc:
        raise TransportError(f"Failed to create Kafka producer: {exc}") from exc


def _ack_from_delivery(topic: str, error: Any, message: Any) -> Ack:
    if error is not None:
        raise TransportError(f"Delivery to topic {topic!r} failed: {error}")
    return Ack(
        topic=message.topic(),
        partition=message.partition(),
        offset=message.offset(),
    )


def _produce(producer: Any, topic: str, payload: bytes, on_delivery: Any) -> None:
    try:
        producer.produce(topic, value=payload, on_delivery=on_delivery)
    except BufferError as exc:
        raise TransportError(
            f"Local producer queue is full; cannot enqueue message for {topic!r}."
        ) from exc
    except KafkaException as exc:
        raise TransportError(f"Failed to enqueue message for {topic!r}: {exc}") from exc


class KafkaPublisher(Publisher):
    """Blocking publisher: every call flushes until its message is acknowledged."""

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        producer: Optional[Any] = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        self._producer = producer if producer is not None else _create_producer(config)
        self._close_timeout = close_timeout

    def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        outcome: Dict[str, Any] = {}

        def _on_delivery(error: Any, message: Any) -> None:
            outcome["error"] = error
            outcome["message"] = message

        _produce(self._producer, topic, payload, _on_delivery)
        remaining = self._producer.flush(timeout)
        if not outcome:
            raise TransportError(
                f"Timed out after {timeout}s waiting for delivery to {topic!r} "
                f"({remaining} message(s) still queued)."
            )
        return _ack_from_delivery(topic, outcome["error"], outcome["message"])

    def close(self) -> None:
        remaining = self._producer.flush(self._close_timeout)
        if remaining:
            logger.warning(
                "Producer closed with undelivered messages",
                extra={"error": f"{remaining} pending"},
            )


class AsyncKafkaPublisher(AsyncPublisher):
    """Asyncio adapter over the callback-based confluent-kafka producer.

    A daemon thread keeps calling ``Producer.poll`` so delivery callbacks fire
    promptly; each callback resolves the awaiting future on the event loop via
    ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        producer: Optional[Any] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        self._producer = producer if producer is not None else _create_producer(config)
        self._poll_interval = poll_interval
        self._close_timeout = close_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    async def start(self) -> None:
        if self._poll_thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._stopped.clear()
        self._poll_thread = threading.Thread(
            target=self._poll_forever, name="kafka-delivery-poll", daemon=True
        )
        self._poll_thread.start()

    def _poll_forever(self) -> None:
        while not self._stopped.is_set():
            self._producer.poll(self._poll_interval)

    async def publish(self, topic: str, payload: bytes, timeout: float) -> Ack:
        if self._poll_thread is None:
            await self.start()
        loop = self._loop
        assert loop is not None
        future: asyncio.Future[Ack] = loop.create_future()

        def _on_delivery(error: Any, message: Any) -> None:
            try:
                loop.call_soon_threadsafe(_resolve, future, topic, error, message)
            except RuntimeError:
                logger.debug(
                    "Delivery report arrived after the event loop closed",
                    extra={"topic": topic},
                )

        _produce(self._producer, topic, payload, _on_delivery)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"Timed out after {timeout}s waiting for delivery to {topic!r}."
            ) from exc

    async def close(self) -> None:
        self._stopped.set()
        thread, self._poll_thread = self._poll_thread, None
        if thread is not None:
            await asyncio.to_thread(thread.join)
        remaining = await asyncio.to_thread(self._producer.flush, self._close_timeout)
        if remaining:
            logger.warning(
                "Producer closed with undelivered messages",
                extra={"error": f"{remaining} pending"},
            )


def _resolve(future: "asyncio.Future[Ack]", topic: str, error: Any, message: Any) -> None:
    # the awaiting task may have timed out or been cancelled already
    if future.done():
        return
    try:
        future.set_result(_ack_from_delivery(topic, error, message))
    except TransportError as exc:
        future.set_exception(exc)
