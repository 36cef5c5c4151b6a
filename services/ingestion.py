"""Best-effort ingestion of readings into the time-series store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Callable, Optional, Union

from app.schemas import ReadingPayload
from datastore.base import ReadingStore
from datastore.factory import build_default_store
from models.errors import DecodeError, StoreUnavailable
from models.records import Reading, Stream
from services.decoder import decode_message

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """Stamps, routes and stores readings arriving from the field.

    ``received_at`` always comes from ``clock`` and never decreases between
    two readings ingested by the same service, even if the wall clock steps
    back.
    """

    def __init__(self, store: ReadingStore, clock: Clock = _utcnow) -> None:
        self.store = store
        self._clock = clock
        self._last_stamp: Optional[datetime] = None
        self._stamp_lock = Lock()

    def handle_message(self, topic: str, payload: Union[bytes, str]) -> Optional[Reading]:
        """Decode and store one transport message.

        Failures are logged and the message is dropped; this never raises so a
        single bad message cannot stop the subscriber loop.
        """
        try:
            decoded = decode_message(topic, payload, received_at=self._stamp())
        except DecodeError as exc:
            logger.warning(
                "Dropping malformed message",
                extra={"topic": topic, "reason": str(exc)},
            )
            return None

        try:
            self.store.append(decoded.stream, decoded.reading)
        except StoreUnavailable as exc:
            logger.error(
                "Store unavailable; dropping message",
                extra={"topic": topic, "stream": decoded.stream.value, "reason": str(exc)},
            )
            return None

        logger.debug(
            "Stored message", extra={"topic": topic, "stream": decoded.stream.value}
        )
        return decoded.reading

    def record(self, payload: ReadingPayload, topic: Optional[str] = None) -> Reading:
        """Store a reading posted directly to the sensors stream.

        ``StoreUnavailable`` propagates to the caller.
        """
        reading = payload.to_reading(received_at=self._stamp(), topic=topic)
        self.store.append(Stream.sensors, reading)
        return reading

    def _stamp(self) -> datetime:
        with self._stamp_lock:
            now = self._clock()
            if self._last_stamp is not None and now < self._last_stamp:
                now = self._last_stamp
            self._last_stamp = now
            return now


@lru_cache
def build_default_ingestion() -> IngestionService:
    return IngestionService(store=build_default_store())
