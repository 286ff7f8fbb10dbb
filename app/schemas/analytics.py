from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ShareTrackRequest(BaseModel):
    # Validated by the service so a bad platform gets the validPlatforms list back.
    platform: Optional[str] = None
    userId: Optional[str] = None


class UniversalTrackRequest(BaseModel):
    type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class StreamEventRequest(BaseModel):
    type: Optional[str] = None
    data: Any = None
