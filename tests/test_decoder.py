from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from models.errors import DecodeError
from models.records import Stream
from services.decoder import decode_message, route_topic

NOW = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("topic", "expected"),
    [
        ("plant_monitoring/sensors/unifi", Stream.sensors),
        ("plant_monitoring/servo/unifi", Stream.servo),
        ("plant_monitoring/status/unifi", Stream.status),
        ("plant_monitoring/servo/status", Stream.servo),
        ("status/servo", Stream.servo),
        ("anything/else", Stream.sensors),
        ("", Stream.sensors),
    ],
)
def test_route_topic_precedence(topic: str, expected: Stream) -> None:
    assert route_topic(topic) is expected


def test_decode_valid_payload() -> None:
    payload = json.dumps(
        {"ph": 5.1, "soil": 44.5, "temperature": 25.0, "humidity": 61.2, "servo_position": 45}
    ).encode("utf-8")

    decoded = decode_message("plant_monitoring/sensors/unifi", payload, received_at=NOW)

    assert decoded.stream is Stream.sensors
    reading = decoded.reading
    assert reading.ph == 5.1
    assert reading.soil == 44.5
    assert reading.servo_position == 45
    assert reading.topic == "plant_monitoring/sensors/unifi"
    assert reading.received_at == NOW


def test_sender_timestamp_and_topic_are_ignored() -> None:
    payload = '{"ph": 5.0, "receivedAt": "1999-01-01T00:00:00Z", "topic": "spoofed", "rssi": -60}'

    decoded = decode_message("plant_monitoring/status/unifi", payload, received_at=NOW)

    assert decoded.reading.received_at == NOW
    assert decoded.reading.topic == "plant_monitoring/status/unifi"
    assert decoded.reading.extras == {"rssi": -60}


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"{\"ph\": ",
        b"[1, 2, 3]",
        b"\"just a string\"",
        b"\xff\xfe",
        b"{\"ph\": \"acidic\"}",
        b"{\"soil\": 120}",
        b"{\"servo_position\": 270}",
        b"{\"ph\": NaN, \"soil\": 40}",
        b"{\"temperature\": Infinity}",
    ],
)
def test_malformed_payloads_raise_decode_error(payload: bytes) -> None:
    with pytest.raises(DecodeError):
        decode_message("plant_monitoring/sensors/unifi", payload, received_at=NOW)


def test_missing_fields_are_allowed() -> None:
    decoded = decode_message("plant_monitoring/status/unifi", b"{\"online\": true}", received_at=NOW)

    assert decoded.stream is Stream.status
    assert decoded.reading.ph is None
    assert decoded.reading.extras == {"online": True}
