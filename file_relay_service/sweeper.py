"""
Retention sweep: deletes every file whose metadata row is older than the
retention window.

A sweep is best effort. Each expired file gets a blob delete followed by a
metadata delete, both attempted regardless of the other's outcome; failures
are logged and counted but never raised, and nothing about them is kept
between runs. A file that failed to delete is simply picked up again by the
next sweep because its row is still present and still overdue.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError

import crud
from config import Settings
from errors import BlobDeleteError
from logging_config import get_logger
from storage import SupabaseBlobStore, storage_path

logger = get_logger(__name__)

IDLE = "idle"
SWEEPING = "sweeping"

def as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive timestamps; the store writes them in UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)

def is_expired(created_at: datetime, now: datetime, retention_days: int) -> bool:
    cutoff = as_utc(now) - timedelta(days=retention_days)
    return as_utc(created_at) < cutoff

@dataclass
class SweepReport:
    scanned: int = 0
    expired: int = 0
    deleted: int = 0
    failures: List[str] = field(default_factory=list)

class RetentionSweeper:
    def __init__(self, session_factory, blob_store: SupabaseBlobStore, retention_days: int):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.retention_days = retention_days
        self.state = IDLE
        self._lock = asyncio.Lock()

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        report = SweepReport()
        if self._lock.locked():
            logger.warning("Retention sweep already in progress, skipping this trigger.")
            return report

        async with self._lock:
            self.state = SWEEPING
            try:
                await self._sweep(report, now or datetime.now(timezone.utc))
            finally:
                self.state = IDLE
        return report

    async def _sweep(self, report: SweepReport, now: datetime):
        logger.info(f"Retention sweep started (retention: {self.retention_days} days)")
        async with self.session_factory() as db:
            try:
                candidates = await crud.list_sweep_candidates(db)
            except SQLAlchemyError:
                logger.exception("Retention sweep could not list file records, aborting this run.")
                return

            report.scanned = len(candidates)
            for uid, filename, created_at in candidates:
                if not is_expired(created_at, now, self.retention_days):
                    continue
                report.expired += 1
                if await self._delete_file(db, uid, filename, report):
                    report.deleted += 1

        logger.info(
            f"Retention sweep finished - Scanned: {report.scanned}, Expired: {report.expired}, "
            f"Deleted: {report.deleted}, Failures: {len(report.failures)}"
        )

    async def _delete_file(self, db, uid: str, filename: str, report: SweepReport) -> bool:
        ok = True
        try:
            await self.blob_store.remove([storage_path(uid, filename)])
        except BlobDeleteError as e:
            ok = False
            report.failures.append(f"blob {uid}: {e.message}")
            logger.error(f"Could not delete blob for expired file {uid}: {e.message}")

        try:
            await crud.delete_file_record(db, uid)
        except SQLAlchemyError as e:
            ok = False
            await db.rollback()
            report.failures.append(f"metadata {uid}: {str(e)}")
            logger.error(f"Could not delete metadata for expired file {uid}: {str(e)}")

        if ok:
            logger.info(f"Deleted expired file: {uid}")
        return ok

def create_scheduler(sweeper: RetentionSweeper, current_settings: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=current_settings.SWEEP_TIMEZONE)
    scheduler.add_job(
        sweeper.run,
        CronTrigger(
            hour=current_settings.SWEEP_HOUR,
            minute=current_settings.SWEEP_MINUTE,
            timezone=current_settings.SWEEP_TIMEZONE,
        ),
        id="retention_sweep",
        name="Delete files past the retention window",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
