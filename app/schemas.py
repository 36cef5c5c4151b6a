"""Pydantic schemas for inbound payloads and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import Reading

# Keys the sender may include but which are always assigned on ingestion.
RESERVED_KEYS = frozenset({"receivedAt", "received_at", "topic"})


class ReadingPayload(BaseModel):
    """Reading as sent by the field device; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    ph: Optional[float] = None
    soil: Optional[float] = Field(default=None, ge=0, le=100)
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    servo_position: Optional[int] = Field(default=None, ge=0, le=180)

    def to_reading(self, received_at: datetime, topic: Optional[str]) -> Reading:
        extras = {
            key: value
            for key, value in (self.model_extra or {}).items()
            if key not in RESERVED_KEYS
        }
        return Reading(
            received_at=received_at,
            ph=self.ph,
            soil=self.soil,
            temperature=self.temperature,
            humidity=self.humidity,
            servo_position=self.servo_position,
            topic=topic,
            extras=extras,
        )


class ReadingOut(BaseModel):
    """A stored reading as returned by the API."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    ph: Optional[float] = None
    soil: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    servo_position: Optional[int] = None
    topic: Optional[str] = None
    received_at: datetime = Field(..., alias="receivedAt")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls.model_validate(reading.to_document())


class RangeResponse(BaseModel):
    """Readings matched by a range query plus their count."""

    data: List[ReadingOut] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class WriteResponse(BaseModel):
    success: bool = True
    message: str
