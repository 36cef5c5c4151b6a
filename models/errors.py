"""Error taxonomy for ingestion, storage and queries."""

from __future__ import annotations


class DecodeError(ValueError):
    """An inbound message could not be turned into a reading."""


class InvalidQueryParameter(ValueError):
    """A query bound was present but could not be parsed."""


class StoreUnavailable(RuntimeError):
    """The backing time-series store cannot be reached."""
