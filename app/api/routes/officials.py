from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

import state
from app.schemas.officials import ImageOverrideRequest
from kvstore import StoreError
from officials.catalog import list_categories
from officials.types import InvalidImageUrlError, UnknownOfficialError

router = APIRouter()


@router.get("/api/officials")
async def api_officials(category: Optional[str] = None):
    try:
        officials = state.get_officials().list_with_images(category)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to list officials: {exc}")
    return {
        "success": True,
        "data": [o.to_dict() for o in officials],
        "categories": list_categories(),
    }


@router.get("/api/officials/{official_id}")
async def api_official(official_id: str):
    try:
        official = state.get_officials().get_with_image(official_id)
    except UnknownOfficialError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch official: {exc}")
    return {"success": True, "data": official.to_dict()}


@router.put("/api/officials/{official_id}/image")
async def api_set_official_image(official_id: str, req: ImageOverrideRequest):
    try:
        official = state.get_officials().set_image_override(official_id, req.url or "")
    except UnknownOfficialError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidImageUrlError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to set official image: {exc}")
    return {"success": True, "data": official.to_dict()}


@router.delete("/api/officials/{official_id}/image")
async def api_clear_official_image(official_id: str):
    try:
        official = state.get_officials().clear_image_override(official_id)
    except UnknownOfficialError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to clear official image: {exc}")
    return {"success": True, "data": official.to_dict()}
