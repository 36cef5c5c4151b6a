"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

MAX_QUERY_LIMIT = 5000
DEFAULT_QUERY_LIMIT = 500


class Stream(str, Enum):
    """Independent append-only sequences of readings."""

    sensors = "sensors"
    servo = "servo"
    status = "status"


class SortDirection(str, Enum):
    ascending = "ascending"
    descending = "descending"


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Reading:
    """A point-in-time observation, immutable once ingested."""

    received_at: datetime
    ph: Optional[float] = None
    soil: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    servo_position: Optional[int] = None
    topic: Optional[str] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "received_at", ensure_utc(self.received_at))
        object.__setattr__(self, "extras", dict(self.extras))

    def to_document(self) -> Dict[str, Any]:
        """Wire representation keyed the way the device and dashboard expect."""

        document: Dict[str, Any] = dict(self.extras)
        document.update(
            {
                "ph": self.ph,
                "soil": self.soil,
                "temperature": self.temperature,
                "humidity": self.humidity,
                "servo_position": self.servo_position,
                "topic": self.topic,
                "receivedAt": self.received_at,
            }
        )
        return document


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return DEFAULT_QUERY_LIMIT
    return min(limit, MAX_QUERY_LIMIT)


@dataclass(frozen=True, slots=True)
class RangeQuery:
    """Time-bounded, sorted, limited read over a stream.

    Both bounds are inclusive. ``limit`` is always clamped into
    ``[1, MAX_QUERY_LIMIT]``; absent or non-positive values fall back to
    ``DEFAULT_QUERY_LIMIT``.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = DEFAULT_QUERY_LIMIT
    sort: SortDirection = SortDirection.descending

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", ensure_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))
        object.__setattr__(self, "limit", _clamp_limit(self.limit))
        object.__setattr__(self, "sort", SortDirection(self.sort))

    @property
    def descending(self) -> bool:
        return self.sort is SortDirection.descending

    def matches(self, reading: Reading) -> bool:
        if self.start is not None and reading.received_at < self.start:
            return False
        if self.end is not None and reading.received_at > self.end:
            return False
        return True
