"""Dispatch loop that fans sensor readings out to a single topic."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from messaging.base import AsyncPublisher, Publisher
from messaging.kafka import AsyncKafkaPublisher, KafkaPublisher, build_producer_config
from messaging.memory import AsyncMemoryPublisher, MemoryPublisher, MessageLog
from models.errors import DispatchError
from services.sensor import TemperatureSensor
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], None]
AsyncSleepFn = Callable[[float], Awaitable[None]]


def _cycles_remaining(completed: int, max_cycles: Optional[int]) -> bool:
    return max_cycles is None or completed < max_cycles


def _encode(sensor: TemperatureSensor) -> bytes:
    return sensor.serialize().encode("utf-8")


class PublishStrategy(ABC):
    """How one cycle's publishes are scheduled and how the loop pauses between cycles."""

    name: str = ""

    @abstractmethod
    def run(
        self,
        sensors: Sequence[TemperatureSensor],
        topic: str,
        interval: float,
        timeout: float,
        max_cycles: Optional[int] = None,
    ) -> int:
        """Run cycles until ``max_cycles`` (forever when ``None``) or the first error.

        The strategy owns its publisher and closes it before returning or raising.
        Returns the number of completed cycles.
        """


class SequentialStrategy(PublishStrategy):
    """Publishes sensors one after another on the calling thread."""

    name = "sequential"

    def __init__(self, publisher: Publisher, sleep: SleepFn = time.sleep) -> None:
        self.publisher = publisher
        self._sleep = sleep

    def run(
        self,
        sensors: Sequence[TemperatureSensor],
        topic: str,
        interval: float,
        timeout: float,
        max_cycles: Optional[int] = None,
    ) -> int:
        completed = 0
        try:
            while _cycles_remaining(completed, max_cycles):
                for sensor in sensors:
                    self._publish_one(sensor, topic, timeout)
                completed += 1
                logger.info(
                    "Cycle complete", extra={"strategy": self.name, "cycle": completed}
                )
                if not _cycles_remaining(completed, max_cycles):
                    break
                self._sleep(interval)
        finally:
            self.publisher.close()
        return completed

    def _publish_one(self, sensor: TemperatureSensor, topic: str, timeout: float) -> None:
        ack = self.publisher.publish(topic, _encode(sensor), timeout)
        logger.debug(
            "Published reading",
            extra={
                "location": sensor.location,
                "topic": ack.topic,
                "partition": ack.partition,
                "offset": ack.offset,
            },
        )


class ConcurrentStrategy(PublishStrategy):
    """Publishes every sensor of a cycle as concurrent asyncio tasks.

    The join is fail-fast: the first failure cancels the siblings still in
    flight, waits for them to settle, and is then re-raised.
    """

    name = "concurrent"

    def __init__(self, publisher: AsyncPublisher, sleep: AsyncSleepFn = asyncio.sleep) -> None:
        self.publisher = publisher
        self._sleep = sleep

    def run(
        self,
        sensors: Sequence[TemperatureSensor],
        topic: str,
        interval: float,
        timeout: float,
        max_cycles: Optional[int] = None,
    ) -> int:
        return asyncio.run(self.run_async(sensors, topic, interval, timeout, max_cycles))

    async def run_async(
        self,
        sensors: Sequence[TemperatureSensor],
        topic: str,
        interval: float,
        timeout: float,
        max_cycles: Optional[int] = None,
    ) -> int:
        completed = 0
        await self.publisher.start()
        try:
            while _cycles_remaining(completed, max_cycles):
                await self.publish_cycle(sensors, topic, timeout)
                completed += 1
                logger.info(
                    "Cycle complete", extra={"strategy": self.name, "cycle": completed}
                )
                if not _cycles_remaining(completed, max_cycles):
                    break
                await self._sleep(interval)
        finally:
            await self.publisher.close()
        return completed

    async def publish_cycle(
        self, sensors: Sequence[TemperatureSensor], topic: str, timeout: float
    ) -> None:
        tasks = [
            asyncio.create_task(
                self._publish_one(sensor, topic, timeout),
                name=f"publish-{sensor.location}",
            )
            for sensor in sensors
        ]
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failures: List[BaseException] = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if not failures:
            return

        abandoned = [
            (sensor, task) for sensor, task in zip(sensors, tasks) if task in pending
        ]
        for _, task in abandoned:
            task.cancel()
        outcomes = await asyncio.gather(
            *(task for _, task in abandoned), return_exceptions=True
        )
        for (sensor, _), outcome in zip(abandoned, outcomes):
            logger.warning(
                "Sibling publish abandoned after failure",
                extra={
                    "strategy": self.name,
                    "location": sensor.location,
                    "error": repr(outcome),
                },
            )
        for extra_failure in failures[1:]:
            logger.warning(
                "Additional publish failure in cycle",
                extra={"strategy": self.name, "error": str(extra_failure)},
            )
        raise failures[0]

    async def _publish_one(
        self, sensor: TemperatureSensor, topic: str, timeout: float
    ) -> None:
        ack = await self.publisher.publish(topic, _encode(sensor), timeout)
        logger.debug(
            "Published reading",
            extra={
                "location": sensor.location,
                "topic": ack.topic,
                "partition": ack.partition,
                "offset": ack.offset,
            },
        )


STRATEGY_NAMES = (ConcurrentStrategy.name, SequentialStrategy.name)


class DispatchLoop:
    """Binds sensors, a topic and timing to a strategy."""

    def __init__(
        self,
        strategy: PublishStrategy,
        sensors: Sequence[TemperatureSensor],
        topic: str,
        interval: float,
        timeout: float,
    ) -> None:
        self.strategy = strategy
        self.sensors = list(sensors)
        self.topic = topic
        self.interval = interval
        self.timeout = timeout

    def run(self, max_cycles: Optional[int] = None) -> int:
        logger.info(
            "Starting dispatch loop",
            extra={
                "strategy": self.strategy.name,
                "topic": self.topic,
                "interval": self.interval,
            },
        )
        try:
            completed = self.strategy.run(
                self.sensors, self.topic, self.interval, self.timeout, max_cycles
            )
        except DispatchError as exc:
            logger.error(
                "Dispatch loop halted",
                extra={"strategy": self.strategy.name, "error": str(exc)},
            )
            raise
        logger.info(
            "Dispatch loop finished",
            extra={"strategy": self.strategy.name, "cycle": completed},
        )
        return completed


def build_strategy(
    name: str,
    settings: Optional[Settings] = None,
    dry_run: bool = False,
    record_path: Optional[Path] = None,
) -> PublishStrategy:
    """Factory that wires a strategy to a Kafka or in-memory publisher."""
    key = name.strip().lower()
    if key not in STRATEGY_NAMES:
        raise ValueError(
            f"Unknown dispatch strategy {name!r}; expected one of: {', '.join(STRATEGY_NAMES)}."
        )

    settings = settings or get_settings()
    log = MessageLog(record_path) if dry_run else None

    if key == ConcurrentStrategy.name:
        if dry_run:
            return ConcurrentStrategy(AsyncMemoryPublisher(log))
        return ConcurrentStrategy(AsyncKafkaPublisher(build_producer_config(settings)))

    if dry_run:
        return SequentialStrategy(MemoryPublisher(log))
    return SequentialStrategy(KafkaPublisher(build_producer_config(settings)))
