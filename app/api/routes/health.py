from __future__ import annotations

import logging

from fastapi import APIRouter

import clock
import state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
async def api_health():
    handle = state.get_store_handle()
    try:
        ok = handle.store.ping()
    except Exception:
        logger.warning("store ping failed", exc_info=True)
        ok = False
    return {
        "status": "ok" if ok and not handle.fallback else "degraded",
        "store": handle.store.name,
        "requestedStore": handle.requested_backend,
        "connected": bool(ok and handle.connected),
        "fallback": handle.fallback,
        "serverTime": clock.now_iso(),
    }
