"""
Record stores for session and behavioral-metric rows.

- InMemoryRecordStore: trial play and tests
- SqlRecordStore: SQLAlchemy (sqlite / PostgreSQL)
- RestRecordStore: hosted PostgREST-style data store over httpx
"""

from __future__ import annotations

from typing import Any

from neuroplay.store.base import RecordStore
from neuroplay.store.memory import InMemoryRecordStore


def get_record_store(settings: Any | None = None) -> RecordStore:
    """Build the store selected by settings.store_backend."""
    if settings is None:
        from config import get_settings

        settings = get_settings()

    if settings.store_backend == "memory":
        return InMemoryRecordStore()
    if settings.store_backend == "rest":
        from neuroplay.store.rest import RestRecordStore

        return RestRecordStore.from_settings(settings)

    from neuroplay.store.sql import SqlRecordStore

    return SqlRecordStore()


__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "get_record_store",
]
