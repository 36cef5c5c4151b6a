from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.factory import build_default_store
from datastore.memory_store import InMemoryReadingStore
from datastore.sqlite_store import SQLiteReadingStore
from models.errors import StoreUnavailable
from models.records import Reading, Stream
from services.ingestion import build_default_ingestion
from services.query import build_default_query_service
from settings import get_settings

BASE = datetime(2024, 4, 10, 7, 0, tzinfo=timezone.utc)

_CACHES = (
    get_settings,
    build_default_store,
    build_default_ingestion,
    build_default_query_service,
)


def _clear_caches() -> None:
    for cache in _CACHES:
        cache.cache_clear()


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("READINGS_DB_PATH", str(tmp_path / "readings.db"))
    monkeypatch.delenv("USE_DUMMY_DATA", raising=False)
    monkeypatch.delenv("MQTT_BROKER_HOST", raising=False)
    _clear_caches()

    app = create_app()
    with TestClient(app) as client:
        yield client

    _clear_caches()


def _seed(count: int = 3) -> None:
    store = build_default_store()
    for minutes in range(1, count + 1):
        store.append(
            Stream.sensors,
            Reading(
                received_at=BASE + timedelta(minutes=minutes),
                ph=4.5 + minutes / 10,
                soil=30.0 + minutes,
                temperature=25.0,
                humidity=60.0,
                servo_position=45,
                topic="plant_monitoring/sensors/unifi",
            ),
        )


def test_lifespan_opens_and_closes_store(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("READINGS_DB_PATH", str(tmp_path / "lifespan.db"))
    monkeypatch.delenv("MQTT_BROKER_HOST", raising=False)
    _clear_caches()

    with TestClient(create_app()):
        store_during = build_default_store()
        assert isinstance(store_during, SQLiteReadingStore)

    with pytest.raises(StoreUnavailable):
        store_during.latest(Stream.sensors)

    store_after = build_default_store()
    try:
        assert store_after is not store_during
    finally:
        store_after.close()
        _clear_caches()


def test_startup_aborts_when_store_cannot_open(tmp_path, monkeypatch) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    monkeypatch.setenv("READINGS_DB_PATH", str(blocker / "readings.db"))
    monkeypatch.delenv("MQTT_BROKER_HOST", raising=False)
    _clear_caches()

    try:
        with pytest.raises(StoreUnavailable):
            with TestClient(create_app()):
                pass
    finally:
        _clear_caches()


def test_store_closed_when_transport_setup_fails(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("READINGS_DB_PATH", str(tmp_path / "readings.db"))
    monkeypatch.delenv("USE_DUMMY_DATA", raising=False)
    _clear_caches()

    def broken_transport(handler=None):
        raise RuntimeError("broker misconfigured")

    monkeypatch.setattr("app.main.build_default_transport", broken_transport)
    store = build_default_store()

    try:
        with pytest.raises(RuntimeError, match="broker misconfigured"):
            with TestClient(create_app()):
                pass
        with pytest.raises(StoreUnavailable):
            store.latest(Stream.sensors)
    finally:
        store.close()
        _clear_caches()


def test_post_reading_then_latest(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensors",
        json={"ph": 5.2, "soil": 41.0, "temperature": 24.5, "humidity": 63.0, "servo_position": 45},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Data saved to database"}

    latest = api_client.get("/api/sensors/latest").json()
    assert latest["ph"] == 5.2
    assert latest["servo_position"] == 45
    assert latest["receivedAt"]


def test_post_rejects_out_of_range_soil(api_client: TestClient) -> None:
    response = api_client.post("/api/sensors", json={"ph": 5.0, "soil": 140})

    assert response.status_code == 422


def test_post_rejects_non_finite_values(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensors",
        content=b'{"ph": NaN, "soil": 40}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422
    assert api_client.get("/api/sensors/latest").json() == {}


def test_range_defaults_to_two_hundred_rows(api_client: TestClient) -> None:
    _seed(201)

    payload = api_client.get("/api/sensors/range").json()

    assert payload["count"] == 200
    assert payload["data"][0]["receivedAt"].startswith("2024-04-10T10:21:00")


def test_latest_is_empty_object_without_data(api_client: TestClient) -> None:
    response = api_client.get("/api/sensors/latest")

    assert response.status_code == 200
    assert response.json() == {}


def test_range_returns_newest_first_with_count(api_client: TestClient) -> None:
    _seed(3)

    response = api_client.get("/api/sensors/range", params={"limit": 2})

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 2
    received = [item["receivedAt"] for item in payload["data"]]
    assert received[0].startswith("2024-04-10T07:03:00")
    assert received[1].startswith("2024-04-10T07:02:00")


def test_range_applies_inclusive_bounds(api_client: TestClient) -> None:
    _seed(5)

    response = api_client.get(
        "/api/sensors/range",
        params={"start": "2024-04-10T07:02:00Z", "end": "2024-04-10T07:04:00Z"},
    )

    assert response.status_code == 200
    assert response.json()["count"] == 3


@pytest.mark.parametrize(
    ("params", "detail"),
    [
        ({"start": "garbage"}, "Invalid start date"),
        ({"end": "2024-13-45"}, "Invalid end date"),
    ],
)
def test_range_rejects_unparseable_bounds(api_client: TestClient, params, detail: str) -> None:
    response = api_client.get("/api/sensors/range", params=params)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_range_ignores_invalid_limit(api_client: TestClient) -> None:
    _seed(3)

    response = api_client.get("/api/sensors/range", params={"limit": "lots"})

    assert response.status_code == 200
    assert response.json()["count"] == 3


def test_csv_export_ascending_with_header(api_client: TestClient) -> None:
    _seed(3)

    response = api_client.get("/api/sensors/csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="sensor-data.csv"' in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "ph,soil,temperature,humidity,servo_position,topic,receivedAt"
    assert len(lines) == 4
    assert lines[1].endswith("2024-04-10T07:01:00.000Z")
    assert lines[3].endswith("2024-04-10T07:03:00.000Z")


def test_csv_export_rejects_bad_dates(api_client: TestClient) -> None:
    response = api_client.get("/api/sensors/csv", params={"start": "soon"})

    assert response.status_code == 400


def test_dummy_data_mode_seeds_memory_store(monkeypatch) -> None:
    monkeypatch.setenv("USE_DUMMY_DATA", "true")
    monkeypatch.delenv("MQTT_BROKER_HOST", raising=False)
    _clear_caches()

    try:
        with TestClient(create_app()) as client:
            assert isinstance(build_default_store(), InMemoryReadingStore)
            payload = client.get("/api/sensors/range").json()
            assert payload["count"] == 2
            assert client.get("/api/sensors/latest").json()["ph"] == 5.0
    finally:
        _clear_caches()


def test_healthcheck(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
