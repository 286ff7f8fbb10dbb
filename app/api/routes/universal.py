from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException

import state
from analytics.types import InvalidPlatformError, InvalidRatingError
from app.schemas.analytics import UniversalTrackRequest
from app.services.analytics_facade import (
    envelope,
    invalid_platform_response,
    json_with_cache_headers,
    not_modified,
)
from kvstore import StoreError
from officials.types import UnknownOfficialError

router = APIRouter()

_TAG = "universal"


@router.get("/api/analytics/universal")
async def api_universal_analytics(since: Optional[str] = None):
    svc = state.get_analytics()
    try:
        last = svc.last_updated()
        if since is not None and not svc.is_modified_since(since):
            return not_modified(last, tag=_TAG)
        snapshot = svc.get_snapshot()
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch universal analytics: {exc}")
    return json_with_cache_headers(envelope(snapshot, last_updated=snapshot["lastUpdated"]), last, tag=_TAG)


@router.post("/api/analytics/universal")
async def api_universal_track(req: UniversalTrackRequest):
    kind = str(req.type or "").strip().lower()
    data: Dict[str, Any] = req.data or {}
    if kind not in ("rating", "share"):
        raise HTTPException(status_code=400, detail="type must be 'rating' or 'share'")
    if kind == "rating" and not data.get("officialId"):
        raise HTTPException(status_code=400, detail="data.officialId is required")

    svc = state.get_analytics()
    try:
        if kind == "rating":
            svc.track_rating(data.get("officialId"), data.get("rating"), user_id=data.get("userId"))
        else:
            svc.track_share(data.get("platform"), user_id=data.get("userId"))
        snapshot = svc.get_snapshot()
    except InvalidPlatformError as exc:
        return invalid_platform_response(exc)
    except InvalidRatingError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UnknownOfficialError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to track {kind}: {exc}")
    return envelope(snapshot, last_updated=snapshot["lastUpdated"])


@router.delete("/api/analytics/universal")
async def api_universal_reset():
    svc = state.get_analytics()
    try:
        snapshot = svc.reset("all")
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to reset analytics: {exc}")
    return envelope(snapshot, last_updated=snapshot["lastUpdated"])
