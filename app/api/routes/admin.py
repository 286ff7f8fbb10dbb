from __future__ import annotations

from fastapi import APIRouter, HTTPException

import state
from app.schemas.admin import BackupActionRequest
from backup import BackupError, BackupNotFoundError, BlobStoreError
from kvstore import StoreError

router = APIRouter()

_ACTIONS = ("backup", "info", "restore")


def _require_backup():
    backup = state.get_backup()
    if backup is None:
        raise HTTPException(status_code=503, detail="Backups are disabled (RATEDEM_BLOB_BACKEND=none)")
    return backup


@router.get("/api/admin/backup")
async def api_backup_info():
    backup = _require_backup()
    try:
        return {"success": True, "data": backup.info()}
    except BlobStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Blob store unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to get backup info: {exc}")


@router.post("/api/admin/backup")
async def api_backup_action(req: BackupActionRequest):
    action = str(req.action or "").strip().lower()
    if action not in _ACTIONS:
        raise HTTPException(status_code=400, detail=f"action must be one of {', '.join(_ACTIONS)}")
    backup = _require_backup()
    svc = state.get_analytics()
    try:
        if action == "backup":
            result = svc.backup_now()
        elif action == "restore":
            result = svc.restore_backup()
        else:
            result = backup.info()
    except BackupNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except BackupError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (BlobStoreError, StoreError) as exc:
        raise HTTPException(status_code=503, detail=f"Backup storage unavailable: {exc}")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to {action}: {exc}")
    return {"success": True, "action": action, "data": result}
