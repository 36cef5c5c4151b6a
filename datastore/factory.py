from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from datastore.base import ReadingStore
from datastore.memory_store import InMemoryReadingStore, seed_demo_readings
from datastore.sqlite_store import SQLiteReadingStore
from settings import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def build_default_store() -> ReadingStore:
    """Construct and open the store selected by the current settings.

    The SQLite store is used whenever a database path is configured, unless
    dummy data was requested; otherwise readings live in memory.
    """
    settings = get_settings()
    store: ReadingStore
    if settings.readings_db_path and not settings.use_dummy_data:
        store = SQLiteReadingStore(Path(settings.readings_db_path))
    else:
        store = InMemoryReadingStore(capacity=settings.memory_buffer_capacity)

    store.open()

    if settings.use_dummy_data:
        seed_demo_readings(store)
        logger.info("Using in-memory dummy data; durable store skipped.")
    return store
