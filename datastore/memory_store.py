from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Deque, Dict, List, Optional

from datastore.base import ReadingStore
from models.records import RangeQuery, Reading, Stream


class InMemoryReadingStore(ReadingStore):
    """Bounded in-process buffer used when no durable store is configured.

    Each stream keeps at most ``capacity`` readings; the oldest appended
    reading is dropped once the buffer is full.
    """

    def __init__(self, capacity: int = 10_000) -> None:
        if capacity <= 0:
            raise ValueError("Buffer capacity must be positive.")
        self.capacity = capacity
        self._buffers: Dict[Stream, Deque[Reading]] = {
            stream: deque(maxlen=capacity) for stream in Stream
        }
        self._lock = Lock()

    def append(self, stream: Stream, reading: Optional[Reading]) -> None:
        reading = self._require_reading(reading)
        with self._lock:
            self._buffers[Stream(stream)].append(reading)

    def query(self, stream: Stream, query: RangeQuery) -> List[Reading]:
        with self._lock:
            snapshot = list(self._buffers[Stream(stream)])

        matched = [reading for reading in snapshot if query.matches(reading)]
        if query.descending:
            # Newest first; equal timestamps come back last-appended first.
            matched.reverse()
        matched = sorted(
            matched, key=lambda reading: reading.received_at, reverse=query.descending
        )
        return matched[: query.limit]


def seed_demo_readings(store: ReadingStore, now: Optional[datetime] = None) -> None:
    """Populate the sensors stream with two demonstration readings."""

    current = now or datetime.now(timezone.utc)
    store.append(
        Stream.sensors,
        Reading(
            received_at=current - timedelta(minutes=1),
            ph=4.7,
            soil=35.0,
            temperature=27.1,
            humidity=58.2,
            servo_position=120,
        ),
    )
    store.append(
        Stream.sensors,
        Reading(
            received_at=current,
            ph=5.0,
            soil=55.0,
            temperature=26.4,
            humidity=62.3,
            servo_position=90,
        ),
    )
