"""realsync — Scheduler Jobs.

APScheduler cron jobs driving both orchestrators hourly. Every twelfth
firing (hours 0 and 12 UTC) runs a full sync instead of an incremental one.
An incremental entity sync is also queued as a one-off job at startup; it
runs on the event loop after the app is serving, not during startup.
Entity sync fires on the hour and event sync on the half hour, so the two
do not routinely collide on the shared lock.
"""

from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from realsync.config import settings
from realsync.core.logging import get_logger
from realsync.models.sync_models import SyncMode
from realsync.sync.orchestrators import SyncRuntime

logger = get_logger("scheduler")

FULL_SYNC_EVERY_HOURS = 12
ENTITY_SYNC_MINUTE = 0
EVENT_SYNC_MINUTE = 30

scheduler = AsyncIOScheduler(timezone="UTC")


def _is_full_sync_hour(now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now.hour % FULL_SYNC_EVERY_HOURS == 0


def entity_sync_mode(now: Optional[datetime] = None) -> SyncMode:
    return SyncMode.FULL if _is_full_sync_hour(now) else SyncMode.INCREMENTAL


def event_sync_mode(now: Optional[datetime] = None) -> SyncMode:
    return SyncMode.FULL if _is_full_sync_hour(now) else SyncMode.PARTIAL


async def entity_sync_job(runtime: SyncRuntime):
    """Hourly entity sync; the orchestrator swallows and logs its own errors."""
    await runtime.entity_sync.run(entity_sync_mode())


async def event_sync_job(runtime: SyncRuntime):
    """Hourly event sync; full on the 12-hour boundary."""
    await runtime.event_sync.run(event_sync_mode())


async def startup_entity_sync_job(runtime: SyncRuntime):
    """One incremental entity sync right after boot."""
    logger.info("🚀 Running startup entity sync...")
    await runtime.entity_sync.run(SyncMode.INCREMENTAL)


def start_scheduler(runtime: SyncRuntime):
    """Queue the startup entity sync, then configure and start the cron jobs."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        startup_entity_sync_job,
        "date",
        run_date=datetime.now(timezone.utc),
        args=[runtime],
        id="startup_entity_sync",
        replace_existing=True,
        misfire_grace_time=None,
    )

    scheduler.add_job(
        entity_sync_job,
        "cron",
        minute=ENTITY_SYNC_MINUTE,
        args=[runtime],
        id="entity_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    scheduler.add_job(
        event_sync_job,
        "cron",
        minute=EVENT_SYNC_MINUTE,
        args=[runtime],
        id="event_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    scheduler.start()
    logger.info(
        f"⏳ Scheduler started. Entity sync hourly at :{ENTITY_SYNC_MINUTE:02d}, "
        f"event sync hourly at :{EVENT_SYNC_MINUTE:02d}, full every {FULL_SYNC_EVERY_HOURS}h"
    )


def stop_scheduler():
    """Shutdown the scheduler without waiting for in-flight syncs."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
