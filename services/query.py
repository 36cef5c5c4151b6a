"""Range queries and CSV export over the reading store."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable, List, Optional, Union

from datastore.base import ReadingStore
from datastore.factory import build_default_store
from models.errors import InvalidQueryParameter
from models.records import (
    MAX_QUERY_LIMIT,
    RangeQuery,
    Reading,
    SortDirection,
    Stream,
    ensure_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_RANGE_LIMIT = 200
DEFAULT_EXPORT_LIMIT = 1000

CSV_COLUMNS = (
    "ph",
    "soil",
    "temperature",
    "humidity",
    "servo_position",
    "topic",
    "receivedAt",
)


def normalize_limit(raw: Union[str, int, None], fallback: int) -> int:
    """Parse a requested limit, falling back when absent or non-positive."""

    if raw is None:
        return fallback
    try:
        parsed = int(str(raw).strip())
    except ValueError:
        return fallback
    if parsed <= 0:
        return fallback
    return min(parsed, MAX_QUERY_LIMIT)


def parse_bound(raw: Optional[str], name: str) -> Optional[datetime]:
    """Parse an optional ISO-8601 bound; blank values mean "unbounded"."""

    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate:
        return None

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise InvalidQueryParameter(f"Invalid {name} date") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def render_csv(readings: Iterable[Reading]) -> str:
    """Render readings with a fixed header row.

    Fields containing a comma, quote or newline are quoted with internal
    quotes doubled; missing values render as empty cells.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_COLUMNS)
    for reading in readings:
        document = reading.to_document()
        writer.writerow([_csv_value(document.get(column)) for column in CSV_COLUMNS])
    return buffer.getvalue()


class QueryService:
    """Read-only facade serving range, latest and export requests."""

    def __init__(self, store: ReadingStore) -> None:
        self.store = store

    def range(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Union[str, int, None] = None,
        stream: Stream = Stream.sensors,
        default_limit: int = DEFAULT_RANGE_LIMIT,
        sort: SortDirection = SortDirection.descending,
    ) -> List[Reading]:
        query = RangeQuery(
            start=parse_bound(start, "start"),
            end=parse_bound(end, "end"),
            limit=normalize_limit(limit, default_limit),
            sort=sort,
        )
        readings = self.store.query(stream, query)
        logger.debug(
            "Range query served",
            extra={"stream": Stream(stream).value, "limit": query.limit, "row_count": len(readings)},
        )
        return readings

    def export_csv(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Union[str, int, None] = None,
        stream: Stream = Stream.sensors,
    ) -> str:
        readings = self.range(
            start=start,
            end=end,
            limit=limit,
            stream=stream,
            default_limit=DEFAULT_EXPORT_LIMIT,
            sort=SortDirection.ascending,
        )
        return render_csv(readings)

    def latest(self, stream: Stream = Stream.sensors) -> Optional[Reading]:
        return self.store.latest(stream)


@lru_cache
def build_default_query_service() -> QueryService:
    return QueryService(store=build_default_store())
