from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator, List

from app.schemas import ReadingPayload
from datastore.memory_store import InMemoryReadingStore
from models.errors import StoreUnavailable
from models.records import RangeQuery, Reading, Stream
from services.ingestion import IngestionService

BASE = datetime(2024, 2, 1, 6, 0, tzinfo=timezone.utc)


def _clock(times: List[datetime]):
    iterator: Iterator[datetime] = iter(times)
    return lambda: next(iterator)


class BrokenStore(InMemoryReadingStore):
    def append(self, stream: Stream, reading: Reading) -> None:
        raise StoreUnavailable("database offline")


def test_malformed_message_does_not_poison_ingestion(caplog) -> None:
    store = InMemoryReadingStore()
    service = IngestionService(store, clock=_clock([BASE, BASE + timedelta(seconds=2)]))

    with caplog.at_level(logging.WARNING):
        dropped = service.handle_message("plant_monitoring/sensors/unifi", b"{broken")
        stored = service.handle_message("plant_monitoring/sensors/unifi", b'{"ph": 5.2, "soil": 48}')

    assert dropped is None
    assert stored is not None
    readings = store.query(Stream.sensors, RangeQuery())
    assert [r.ph for r in readings] == [5.2]

    records = [record for record in caplog.records if record.name == "services.ingestion"]
    assert any("Dropping malformed message" in record.getMessage() for record in records)
    assert any(getattr(record, "topic", None) == "plant_monitoring/sensors/unifi" for record in records)


def test_messages_are_routed_by_topic() -> None:
    store = InMemoryReadingStore()
    service = IngestionService(store)

    service.handle_message("plant_monitoring/servo/unifi", b'{"servo_position": 90}')
    service.handle_message("plant_monitoring/status/unifi", b'{"online": true}')
    service.handle_message("plant_monitoring/sensors/unifi", b'{"ph": 4.8}')

    assert len(store.query(Stream.servo, RangeQuery())) == 1
    assert len(store.query(Stream.status, RangeQuery())) == 1
    assert len(store.query(Stream.sensors, RangeQuery())) == 1


def test_store_failure_is_logged_and_dropped(caplog) -> None:
    service = IngestionService(BrokenStore())

    with caplog.at_level(logging.ERROR):
        result = service.handle_message("plant_monitoring/sensors/unifi", b'{"ph": 5.0}')

    assert result is None
    assert any(getattr(record, "stream", None) == "sensors" for record in caplog.records)


def test_received_at_never_moves_backwards() -> None:
    store = InMemoryReadingStore()
    earlier = BASE - timedelta(minutes=5)
    service = IngestionService(store, clock=_clock([BASE, earlier, BASE + timedelta(minutes=1)]))

    first = service.handle_message("sensors", b'{"ph": 5.0}')
    second = service.handle_message("sensors", b'{"ph": 5.1}')
    third = service.handle_message("sensors", b'{"ph": 5.2}')

    assert first is not None and second is not None and third is not None
    assert first.received_at == BASE
    assert second.received_at == BASE
    assert third.received_at == BASE + timedelta(minutes=1)


def test_record_stamps_and_stores_direct_writes() -> None:
    store = InMemoryReadingStore()
    service = IngestionService(store, clock=_clock([BASE]))

    reading = service.record(ReadingPayload(ph=5.0, soil=40, receivedAt="1990-01-01T00:00:00Z"))

    assert reading.received_at == BASE
    assert reading.extras == {}
    assert store.latest(Stream.sensors) == reading


def test_record_propagates_store_failure() -> None:
    service = IngestionService(BrokenStore())

    try:
        service.record(ReadingPayload(ph=5.0))
    except StoreUnavailable as exc:
        assert "offline" in str(exc)
    else:  # pragma: no cover - defensive check
        raise AssertionError("Expected StoreUnavailable")
