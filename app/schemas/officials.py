from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ImageOverrideRequest(BaseModel):
    url: Optional[str] = None
