"""Domain models for simulated sensor readings."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

TEMPERATURE_MIN = 12.0
TEMPERATURE_MAX = 30.0


class SensorReading(BaseModel):
    """A single simulated measurement, serialized as the message body."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(..., description="Random identifier used as a downstream dedup key.")
    timestamp: datetime = Field(..., description="UTC instant the reading was taken.")
    location: str = Field(..., description="Label of the sensor that produced the reading.")
    temperature: float = Field(..., ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_json(self) -> str:
        """Render the reading as compact JSON with keys in declaration order."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str | bytes) -> "SensorReading":
        return cls.model_validate_json(payload)
