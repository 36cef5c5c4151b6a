from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_DB_PATH_ENV = "READINGS_DB_PATH"
_DUMMY_DATA_ENV = "USE_DUMMY_DATA"
_BUFFER_CAPACITY_ENV = "MEMORY_BUFFER_CAPACITY"
_MQTT_HOST_ENV = "MQTT_BROKER_HOST"
_MQTT_PORT_ENV = "MQTT_BROKER_PORT"
_MQTT_TOPICS_ENV = "MQTT_TOPICS"
_MQTT_CLIENT_PREFIX_ENV = "MQTT_CLIENT_ID_PREFIX"
_MQTT_KEEPALIVE_ENV = "MQTT_KEEPALIVE"
_MQTT_RECONNECT_ENV = "MQTT_RECONNECT_MAX_DELAY"
_MQTT_TIMEOUT_ENV = "MQTT_CONNECT_TIMEOUT"
_DEADBAND_ENV = "CONTROL_DEADBAND"
_SENSOR_PERIOD_ENV = "SENSOR_PERIOD_SECONDS"
_CONTROL_PERIOD_ENV = "CONTROL_PERIOD_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_TOPICS = (
    "plant_monitoring/sensors/unifi",
    "plant_monitoring/servo/unifi",
    "plant_monitoring/status/unifi",
)


@dataclass(frozen=True)
class Settings:
    readings_db_path: Optional[str]
    use_dummy_data: bool
    memory_buffer_capacity: int
    mqtt_host: Optional[str]
    mqtt_port: int
    mqtt_topics: Tuple[str, ...]
    mqtt_client_id_prefix: str
    mqtt_keepalive: int
    mqtt_reconnect_max_delay: int
    mqtt_connect_timeout: float
    control_deadband: int
    sensor_period: float
    control_period: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in {"1", "true", "yes", "on"}


def _read_topics(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_MQTT_TOPICS_ENV)
    if value is None:
        return default
    topics = tuple(part.strip() for part in value.split(",") if part.strip())
    return topics or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        readings_db_path=_read_optional_env(_DB_PATH_ENV, "./tmp/readings.db"),
        use_dummy_data=_read_bool(_DUMMY_DATA_ENV, False),
        memory_buffer_capacity=_read_positive_int(_BUFFER_CAPACITY_ENV, 10_000),
        mqtt_host=_read_optional_env(_MQTT_HOST_ENV, None),
        mqtt_port=_read_positive_int(_MQTT_PORT_ENV, 1883),
        mqtt_topics=_read_topics(DEFAULT_TOPICS),
        mqtt_client_id_prefix=_read_str_env(_MQTT_CLIENT_PREFIX_ENV, "mqtt_to_store_"),
        mqtt_keepalive=_read_positive_int(_MQTT_KEEPALIVE_ENV, 60),
        mqtt_reconnect_max_delay=_read_positive_int(_MQTT_RECONNECT_ENV, 30),
        mqtt_connect_timeout=_read_positive_float(_MQTT_TIMEOUT_ENV, 4.0),
        control_deadband=_read_positive_int(_DEADBAND_ENV, 10),
        sensor_period=_read_positive_float(_SENSOR_PERIOD_ENV, 2.0),
        control_period=_read_positive_float(_CONTROL_PERIOD_ENV, 5.0),
        log_level=_read_log_level("INFO"),
    )
