from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import state
from kvstore import StoreError

router = APIRouter()


@router.get("/api/analytics/active")
async def api_enter_session(user: Optional[str] = None):
    if not (user or "").strip():
        raise HTTPException(status_code=400, detail="Missing user")
    try:
        return {"active": state.get_analytics().enter_session(user)}
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to register session: {exc}")


@router.delete("/api/analytics/active")
async def api_leave_session(user: Optional[str] = None):
    if not (user or "").strip():
        raise HTTPException(status_code=400, detail="Missing user")
    try:
        return {"active": state.get_analytics().leave_session(user)}
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to end session: {exc}")
