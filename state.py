from __future__ import annotations

"""Process-wide runtime objects (store, services, event broker).

startup_init_state() builds everything from Settings; route handlers reach the
services through the get_* accessors. Calling startup_init_state() again
closes the previous store and rebuilds (tests rely on this).
"""

import logging
import threading
from typing import Optional

from analytics.events import EventBroker
from analytics.repo import AnalyticsRepo
from analytics.service import AnalyticsService
from backup import BackupService, build_blob_store
from config import Settings, load_settings
from kvstore import StoreHandle, build_store
from officials.service import OfficialsService

logger = logging.getLogger(__name__)

_LOCK = threading.RLock()

_settings: Optional[Settings] = None
_handle: Optional[StoreHandle] = None
_broker: Optional[EventBroker] = None
_backup: Optional[BackupService] = None
_analytics: Optional[AnalyticsService] = None
_officials: Optional[OfficialsService] = None


def startup_init_state(settings: Optional[Settings] = None) -> None:
    global _settings, _handle, _broker, _backup, _analytics, _officials
    with _LOCK:
        if _handle is not None:
            shutdown_state()

        s = settings or load_settings()
        handle = build_store(s)
        repo = AnalyticsRepo(handle.store, prefix=s.key_prefix)
        blobs = build_blob_store(s)
        backup = BackupService(repo, blobs) if blobs is not None else None
        broker = EventBroker()

        _settings = s
        _handle = handle
        _broker = broker
        _backup = backup
        _analytics = AnalyticsService(
            repo,
            connected=handle.connected,
            broker=broker,
            backup=backup,
            backup_interval_seconds=s.backup_interval_seconds,
        )
        _officials = OfficialsService(repo)
        logger.info(
            "runtime state ready: store=%s fallback=%s blobs=%s",
            handle.store.name,
            handle.fallback,
            blobs.name if blobs is not None else "none",
        )


def shutdown_state() -> None:
    global _settings, _handle, _broker, _backup, _analytics, _officials
    with _LOCK:
        handle = _handle
        _settings = _handle = _broker = _backup = _analytics = _officials = None
        if handle is not None:
            try:
                handle.store.close()
            except Exception:
                logger.warning("failed to close store", exc_info=True)


def _require(value, name: str):
    if value is None:
        raise RuntimeError(f"runtime state is not initialized ({name}); call startup_init_state() first")
    return value


def is_initialized() -> bool:
    return _handle is not None


def get_settings() -> Settings:
    return _require(_settings, "settings")


def get_store_handle() -> StoreHandle:
    return _require(_handle, "store")


def get_broker() -> EventBroker:
    return _require(_broker, "broker")


def get_backup() -> Optional[BackupService]:
    """None when blob storage is disabled (RATEDEM_BLOB_BACKEND=none)."""
    _require(_handle, "store")
    return _backup


def get_analytics() -> AnalyticsService:
    return _require(_analytics, "analytics")


def get_officials() -> OfficialsService:
    return _require(_officials, "officials")
