"""Sync management endpoints"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.models import SyncLog
from app.models.base import get_db
from app.models.sync_log import SyncKind, SyncStatus
from app.scheduler import scheduler
from app.security import TriggerThrottle, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

admin_throttle = TriggerThrottle(settings.trigger_cooldown_seconds)


class SyncResultResponse(BaseModel):
    status: str
    message: str
    timestamp: str
    stats: Optional[Dict[str, Any]] = None


class SyncLogResponse(BaseModel):
    id: int
    kind: str
    status: str
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


def _to_response(result: Dict[str, Any]) -> SyncResultResponse:
    if result["status"] == "busy":
        raise HTTPException(status_code=409, detail=result["message"])
    if result["status"] == "error":
        # Summary and error class only; the traceback stays in the server log.
        raise HTTPException(status_code=500, detail=result["message"])
    return SyncResultResponse(**result)


@router.get("/full", response_model=SyncResultResponse)
def trigger_full_sync():
    """Run a full synchronization and report its outcome"""
    return _to_response(scheduler.run_full_sync())


@router.post("/admin/full", response_model=SyncResultResponse)
def trigger_full_sync_admin(admin: str = Depends(require_admin)):
    """Administrator trigger, limited to one call per cooldown window"""
    retry_after = admin_throttle.try_acquire()
    if retry_after > 0:
        raise HTTPException(
            status_code=429,
            detail="Full sync was triggered recently, try again later",
            headers={"Retry-After": str(int(retry_after) + 1)},
        )
    logger.info(f"Full sync triggered by administrator {admin}")
    return _to_response(scheduler.run_full_sync())


@router.get("/logs", response_model=List[SyncLogResponse])
def get_sync_logs(
    kind: Optional[SyncKind] = None,
    status: Optional[SyncStatus] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """Get recent sync log entries, newest first"""
    query = db.query(SyncLog)
    if kind:
        query = query.filter(SyncLog.kind == kind)
    if status:
        query = query.filter(SyncLog.status == status)
    rows = query.order_by(SyncLog.created_at.desc(), SyncLog.id.desc()).limit(min(limit, 1000)).all()
    return [
        SyncLogResponse(
            id=row.id,
            kind=row.kind.value,
            status=row.status.value,
            message=row.message,
            details=_load_details(row.details),
            created_at=row.created_at,
        )
        for row in rows
    ]


def _load_details(value: Optional[str]) -> Optional[Dict[str, Any]]:
    if not value:
        return None
    try:
        loaded = json.loads(value)
    except ValueError:
        return {"raw": value}
    return loaded if isinstance(loaded, dict) else {"value": loaded}
