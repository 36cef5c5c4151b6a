from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, List, Optional, Sequence

from datastore.base import ReadingStore
from models.errors import StoreUnavailable
from models.records import RangeQuery, Reading, Stream, ensure_utc

logger = logging.getLogger(__name__)

_COLUMNS = (
    "ph",
    "soil",
    "temperature",
    "humidity",
    "servo_position",
    "topic",
    "received_at",
    "extras",
)


def _encode_timestamp(value: datetime) -> str:
    # Fixed-width UTC text keeps lexical order equal to chronological order.
    return ensure_utc(value).isoformat(timespec="microseconds")


class SQLiteReadingStore(ReadingStore):
    """Durable store keeping one SQLite table per stream."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = Lock()

    def open(self) -> None:
        with self._lock:
            if self._connection is not None:
                return
            connection: Optional[sqlite3.Connection] = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                connection = sqlite3.connect(str(self.path), check_same_thread=False)
                with connection:
                    for stream in Stream:
                        connection.execute(
                            f"""
                            CREATE TABLE IF NOT EXISTS {stream.value} (
                                id INTEGER PRIMARY KEY AUTOINCREMENT,
                                ph REAL,
                                soil REAL,
                                temperature REAL,
                                humidity REAL,
                                servo_position INTEGER,
                                topic TEXT,
                                received_at TEXT NOT NULL,
                                extras TEXT NOT NULL DEFAULT '{{}}'
                            )
                            """
                        )
                        connection.execute(
                            f"CREATE INDEX IF NOT EXISTS idx_{stream.value}_received_at "
                            f"ON {stream.value} (received_at)"
                        )
            except (OSError, sqlite3.Error) as exc:
                if connection is not None:
                    connection.close()
                raise StoreUnavailable(
                    f"Unable to open reading store at {self.path}: {exc}"
                ) from exc
            self._connection = connection
        logger.info("Opened SQLite reading store at %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    def append(self, stream: Stream, reading: Optional[Reading]) -> None:
        reading = self._require_reading(reading)
        table = Stream(stream).value
        values = (
            reading.ph,
            reading.soil,
            reading.temperature,
            reading.humidity,
            reading.servo_position,
            reading.topic,
            _encode_timestamp(reading.received_at),
            json.dumps(dict(reading.extras), sort_keys=True),
        )
        placeholders = ", ".join("?" for _ in _COLUMNS)
        self._execute(
            f"INSERT INTO {table} ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            values,
            commit=True,
        )

    def query(self, stream: Stream, query: RangeQuery) -> List[Reading]:
        table = Stream(stream).value
        clauses: list[str] = []
        params: list[Any] = []
        if query.start is not None:
            clauses.append("received_at >= ?")
            params.append(_encode_timestamp(query.start))
        if query.end is not None:
            clauses.append("received_at <= ?")
            params.append(_encode_timestamp(query.end))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "DESC" if query.descending else "ASC"
        params.append(query.limit)

        rows = self._execute(
            f"SELECT {', '.join(_COLUMNS)} FROM {table}{where} "
            f"ORDER BY received_at {direction}, id {direction} LIMIT ?",
            params,
        )
        return [self._row_to_reading(row) for row in rows]

    def _execute(
        self, sql: str, params: Sequence[Any], commit: bool = False
    ) -> list[tuple]:
        with self._lock:
            if self._connection is None:
                raise StoreUnavailable(f"Reading store at {self.path} is not open.")
            try:
                cursor = self._connection.execute(sql, params)
                rows = cursor.fetchall()
                if commit:
                    self._connection.commit()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"Reading store query failed: {exc}") from exc
        return rows

    @staticmethod
    def _row_to_reading(row: tuple) -> Reading:
        ph, soil, temperature, humidity, servo_position, topic, received_at, extras = row
        return Reading(
            received_at=datetime.fromisoformat(received_at),
            ph=ph,
            soil=soil,
            temperature=temperature,
            humidity=humidity,
            servo_position=servo_position,
            topic=topic,
            extras=json.loads(extras or "{}"),
        )
