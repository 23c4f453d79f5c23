"""Background scheduler and runner for full synchronization"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.models import SyncLog
from app.models.base import SessionLocal
from app.models.sync_log import SyncKind, SyncStatus
from app.services.sync_service import SyncService

logger = logging.getLogger(__name__)

FULL_SYNC_JOB_ID = "full_sync"


class SyncScheduler:
    """Scheduler for periodic full synchronization.

    Also the single entry point for on-demand runs: at most one full run is
    in progress at a time, a second caller gets a "busy" result.
    """

    def __init__(self, session_factory=SessionLocal, service_factory=SyncService):
        self.scheduler = BackgroundScheduler()
        self.session_factory = session_factory
        self.service_factory = service_factory
        self._run_lock = threading.Lock()

    def start(self):
        """Start the scheduler"""
        self.scheduler.start()
        logger.info("Sync scheduler started")
        self.schedule_full_sync(settings.sync_interval_minutes)

    def stop(self):
        """Stop the scheduler"""
        self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")

    def schedule_full_sync(self, interval_minutes: int):
        """(Re)schedule the periodic full run; an interval of 0 disables it"""
        existing = self.scheduler.get_job(FULL_SYNC_JOB_ID)
        if existing is not None:
            self.scheduler.remove_job(FULL_SYNC_JOB_ID)

        if interval_minutes <= 0:
            logger.info("Scheduled full sync disabled")
            return

        self.scheduler.add_job(
            func=self._full_sync_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=FULL_SYNC_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Scheduled full sync every {interval_minutes} minutes")

    def _full_sync_job(self):
        """Job function for the periodic full run"""
        logger.info("Running scheduled full sync")
        result = self.run_full_sync()
        logger.info(f"Scheduled full sync finished: {result['status']}")

    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run_full_sync(self) -> Dict[str, Any]:
        """Run one full synchronization unless one is already in progress"""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Full sync requested while another run is in progress")
            return {
                "status": "busy",
                "message": "A full synchronization is already running",
                "timestamp": _timestamp(),
            }

        try:
            return self._run_full_sync()
        finally:
            self._run_lock.release()

    def _run_full_sync(self) -> Dict[str, Any]:
        db = self.session_factory()
        service = self.service_factory(db)
        try:
            stats = service.run_full()
            result = {
                "status": "success",
                "message": "Full synchronization completed",
                "timestamp": _timestamp(),
                "stats": stats,
            }
            _record(db, SyncStatus.SUCCESS, result["message"], stats)
            return result
        except Exception as e:
            logger.error(f"Full sync failed: {e}")
            message = f"Full synchronization failed ({type(e).__name__})"
            _record(db, SyncStatus.FAILED, message, {"error": type(e).__name__, "detail": str(e)})
            return {
                "status": "error",
                "message": message,
                "timestamp": _timestamp(),
                "error": type(e).__name__,
            }
        finally:
            service.close()
            db.close()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record(db, status: SyncStatus, message: str, details: Dict[str, Any]):
    """Persist a run outcome outside the run's own transaction"""
    try:
        db.add(
            SyncLog(
                kind=SyncKind.FULL,
                status=status,
                message=message,
                details=json.dumps(details, default=str),
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to persist sync log entry: {e}")


# Global scheduler instance
scheduler = SyncScheduler()
