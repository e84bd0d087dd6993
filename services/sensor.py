"""Simulated temperature sensors."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import uuid4

from pydantic_core import PydanticSerializationError

from models.errors import SerializationError
from models.readings import TEMPERATURE_MAX, TEMPERATURE_MIN, SensorReading


class TemperatureSensor:
    """Generator of readings bound to one fixed location label.

    The random source is injected so tests can pin the sampled temperature.
    Instances hold no mutable state of their own and can be shared between
    concurrent publish tasks.
    """

    def __init__(self, location: str, rng: Optional[random.Random] = None) -> None:
        self._location = location
        self._rng = rng if rng is not None else random.Random()

    @property
    def location(self) -> str:
        return self._location

    def measure(self) -> SensorReading:
        sample = self._rng.uniform(TEMPERATURE_MIN, TEMPERATURE_MAX)
        # uniform() may round past the upper bound
        temperature = min(max(sample, TEMPERATURE_MIN), TEMPERATURE_MAX)
        return SensorReading(
            id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            location=self._location,
            temperature=temperature,
        )

    def serialize(self) -> str:
        """Take a fresh measurement and return it as a JSON document."""
        reading = self.measure()
        try:
            return reading.to_json()
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            raise SerializationError(
                f"Failed to serialize reading from sensor {self._location!r}."
            ) from exc

    def __repr__(self) -> str:
        return f"TemperatureSensor(location={self._location!r})"


def build_sensors(
    locations: Iterable[str], rng: Optional[random.Random] = None
) -> List[TemperatureSensor]:
    return [TemperatureSensor(location, rng=rng) for location in locations]
