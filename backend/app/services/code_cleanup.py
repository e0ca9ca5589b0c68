"""
Verification code cleanup scheduler

Every interval: soft-delete expired codes, then hard-purge used or
soft-deleted codes older than the retention window. Runs once on start.

CleanupStatus is the in-memory view the status endpoint reads. The sweeper
is its only writer; the lock is held only for the field copy, never
across a database call.
"""
import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional

from app.core.database import Database
from app.core.utils import utcnow, format_timestamp
from app.services.verification_codes import VerificationCodeService

logger = logging.getLogger(__name__)


class CleanupStatus:
    """Process-local sweeper state. Reset on restart."""

    def __init__(self, interval_minutes: int = 10):
        self._lock = threading.Lock()
        self._running = False
        self._interval_minutes = interval_minutes
        self._last_cleanup_time: Optional[datetime] = None

    def mark_started(self, interval_minutes: int) -> None:
        with self._lock:
            self._running = True
            self._interval_minutes = interval_minutes

    def mark_stopped(self) -> None:
        with self._lock:
            self._running = False

    def mark_run(self, when: datetime) -> None:
        with self._lock:
            self._last_cleanup_time = when

    def snapshot(self) -> Dict:
        with self._lock:
            running = self._running
            interval = self._interval_minutes
            last = self._last_cleanup_time

        next_run = last + timedelta(minutes=interval) if last else None
        return {
            "running": running,
            "interval_minutes": interval,
            "last_cleanup_time": format_timestamp(last),
            "next_cleanup_time": format_timestamp(next_run),
        }


class CodeCleanupScheduler:
    """Cancellable periodic sweeper owned by the application lifespan."""

    def __init__(
        self,
        database: Database,
        status: CleanupStatus,
        secret_key: str,
        interval_minutes: int = 10,
        retention_days: int = 7,
    ):
        self.database = database
        self.status = status
        self.secret_key = secret_key
        self.interval_minutes = interval_minutes
        self.retention_days = retention_days
        self._task: Optional[asyncio.Task] = None
        self.stats = {
            "runs": 0,
            "expired_marked": 0,
            "purged": 0,
            "errors": 0,
        }

    async def run_once(self) -> Dict[str, int]:
        """One sweep. Errors are logged and counted, never raised."""
        result = {"expired_marked": 0, "purged": 0}
        try:
            async with self.database.session() as db:
                codes = VerificationCodeService(db, self.secret_key)
                result["expired_marked"] = await codes.sweep_expired()
                result["purged"] = await codes.purge_old(self.retention_days)
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"Code cleanup failed: {type(e).__name__}: {e}")
        else:
            self.stats["expired_marked"] += result["expired_marked"]
            self.stats["purged"] += result["purged"]
            if result["expired_marked"] or result["purged"]:
                logger.info(
                    f"Code cleanup: {result['expired_marked']} expired codes retired, "
                    f"{result['purged']} old codes purged"
                )
        finally:
            self.stats["runs"] += 1
            self.status.mark_run(utcnow())
        return result

    async def _loop(self) -> None:
        interval_seconds = self.interval_minutes * 60
        logger.info(f"Code cleanup scheduler started (interval: {self.interval_minutes} minutes)")
        while True:
            await self.run_once()
            await asyncio.sleep(interval_seconds)

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self.status.mark_started(self.interval_minutes)
        self._task = asyncio.create_task(self._loop(), name="code-cleanup")

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Code cleanup scheduler cancelled")
        self._task = None
        self.status.mark_stopped()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
