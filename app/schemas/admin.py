from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class BackupActionRequest(BaseModel):
    action: Optional[str] = None  # backup | info | restore
