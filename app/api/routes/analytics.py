from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import state
from analytics.types import InvalidPlatformError
from app.schemas.analytics import ShareTrackRequest
from app.services.analytics_facade import (
    envelope,
    invalid_platform_response,
    json_with_cache_headers,
    not_modified,
)
from kvstore import StoreError

router = APIRouter()

_TAG = "shares"


@router.get("/api/analytics")
async def api_share_analytics(since: Optional[str] = None):
    svc = state.get_analytics()
    try:
        last = svc.last_updated()
        if since is not None and not svc.is_modified_since(since):
            return not_modified(last, tag=_TAG)
        shares = svc.get_share_analytics()
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch share analytics: {exc}")
    return json_with_cache_headers(envelope(shares, last_updated=last), last, tag=_TAG)


@router.post("/api/analytics")
async def api_track_share(req: ShareTrackRequest):
    svc = state.get_analytics()
    try:
        view = svc.track_share(req.platform, user_id=req.userId)
        last = svc.last_updated()
    except InvalidPlatformError as exc:
        return invalid_platform_response(exc)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to track share: {exc}")
    return envelope(view, last_updated=last)


@router.delete("/api/analytics")
async def api_reset_shares():
    svc = state.get_analytics()
    try:
        snapshot = svc.reset("shares")
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to reset share analytics: {exc}")
    return envelope(snapshot["shareAnalytics"], last_updated=snapshot["lastUpdated"])


@router.get("/api/analytics/summary")
async def api_analytics_summary():
    svc = state.get_analytics()
    try:
        summary = svc.get_summary()
        last = svc.last_updated()
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to build analytics summary: {exc}")
    return envelope(summary, last_updated=last)
