from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

import state
from analytics.events import RELAY_EVENT_TYPES, sse_stream
from app.schemas.analytics import StreamEventRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/analytics/stream")
async def api_analytics_stream(request: Request):
    broker = state.get_broker()
    return StreamingResponse(
        sse_stream(broker, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/api/analytics/stream", status_code=204)
async def api_analytics_relay(req: StreamEventRequest):
    kind = str(req.type or "").strip().lower()
    if kind not in RELAY_EVENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"type must be one of {', '.join(RELAY_EVENT_TYPES)}",
        )
    delivered = state.get_broker().publish(kind, req.data)
    logger.debug("relayed %s event to %d subscribers", kind, delivered)
    return Response(status_code=204)
