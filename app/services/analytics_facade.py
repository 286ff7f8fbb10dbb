from __future__ import annotations

"""Response helpers shared by the analytics routes (envelopes, cache headers)."""

import hashlib
from email.utils import format_datetime
from typing import Any, Dict, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

import clock
from analytics import config as a_cfg
from analytics.types import InvalidPlatformError


def envelope(data: Any, *, last_updated: Optional[str]) -> Dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "lastUpdated": last_updated or None,
        "serverTime": clock.now_iso(),
        "version": a_cfg.SNAPSHOT_VERSION,
    }


def cache_headers(last_updated: Optional[str], *, tag: str) -> Dict[str, str]:
    headers = {"Cache-Control": "no-cache, must-revalidate", "X-Data-Version": a_cfg.SNAPSHOT_VERSION}
    dt = clock.parse_iso(last_updated)
    if dt is not None:
        headers["Last-Modified"] = format_datetime(dt, usegmt=True)
        digest = hashlib.sha1(f"{tag}:{last_updated}".encode("utf-8")).hexdigest()[:16]
        headers["ETag"] = f'"{tag}-{digest}"'
    return headers


def not_modified(last_updated: Optional[str], *, tag: str) -> Response:
    return Response(status_code=304, headers=cache_headers(last_updated, tag=tag))


def json_with_cache_headers(payload: Dict[str, Any], last_updated: Optional[str], *, tag: str) -> JSONResponse:
    return JSONResponse(content=payload, headers=cache_headers(last_updated, tag=tag))


def invalid_platform_response(exc: InvalidPlatformError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc), "validPlatforms": exc.valid_platforms})
