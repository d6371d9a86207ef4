"""Storage utilities for persisted workflow documents."""

from .sqlite_store import SQLiteStore
from .async_store_adapter import AsyncStoreAdapter

__all__ = [
    "SQLiteStore",
    "AsyncStoreAdapter",
]
