"""Key-value store backends for the analytics counters.

Public API
----------
- KeyValueStore (contract), MemoryStore, SqliteStore, RedisStore
- build_store(settings) -> StoreHandle
- StoreError, StoreUnavailableError, StoreConflictError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .base import KeyValueStore, StoreConflictError, StoreError, StoreUnavailableError
from .memory import MemoryStore
from .redis_store import RedisStore
from .sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreHandle:
    store: KeyValueStore
    requested_backend: str
    # True when the requested backend was unreachable and MemoryStore stands in.
    fallback: bool = False

    @property
    def connected(self) -> bool:
        return bool(self.store.persistent and not self.fallback)


def _open_backend(settings) -> KeyValueStore:
    backend = settings.store_backend
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(settings.db_path)
    if backend == "redis":
        return RedisStore.connect(settings.redis_url)
    raise StoreUnavailableError(f"unknown store backend: {backend!r}")


def build_store(settings) -> StoreHandle:
    """Open the configured backend, falling back to MemoryStore when it is unreachable."""
    try:
        store = _open_backend(settings)
    except StoreUnavailableError:
        logger.warning(
            "store backend %r unavailable; falling back to in-memory store (data will not persist)",
            settings.store_backend,
            exc_info=True,
        )
        return StoreHandle(store=MemoryStore(), requested_backend=settings.store_backend, fallback=True)
    logger.info("store backend ready: %s", store.name)
    return StoreHandle(store=store, requested_backend=settings.store_backend)


__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
    "RedisStore",
    "StoreHandle",
    "build_store",
    "StoreError",
    "StoreUnavailableError",
    "StoreConflictError",
]
