from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import List, Optional, Type

from models.records import RangeQuery, Reading, SortDirection, Stream


class ReadingStore(ABC):
    """Append-only time-series sink with a range query surface.

    Implementations are constructed once at startup, ``open``-ed before use
    and ``close``-d on shutdown. Appends and queries may be called from
    several threads at once.
    """

    def open(self) -> None:
        """Acquire backing resources; raise ``StoreUnavailable`` on failure."""

    def close(self) -> None:
        """Release backing resources."""

    def __enter__(self) -> "ReadingStore":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    @abstractmethod
    def append(self, stream: Stream, reading: Reading) -> None:
        ...

    @abstractmethod
    def query(self, stream: Stream, query: RangeQuery) -> List[Reading]:
        ...

    def latest(self, stream: Stream) -> Optional[Reading]:
        found = self.query(stream, RangeQuery(limit=1, sort=SortDirection.descending))
        return found[0] if found else None

    @staticmethod
    def _require_reading(reading: Optional[Reading]) -> Reading:
        if reading is None:
            raise ValueError("Cannot append an unset reading.")
        return reading
