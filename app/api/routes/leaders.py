from __future__ import annotations

from fastapi import APIRouter, HTTPException

import state
from app.services.analytics_facade import envelope
from kvstore import StoreError
from officials.types import UnknownOfficialError

router = APIRouter()


@router.get("/api/leaders/{official_id}/analytics")
async def api_leader_analytics(official_id: str):
    svc = state.get_analytics()
    try:
        view = svc.get_leader(official_id)
        last = svc.last_updated()
    except UnknownOfficialError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch leader analytics: {exc}")
    return envelope(view, last_updated=last)
