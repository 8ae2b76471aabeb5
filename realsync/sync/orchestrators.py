"""realsync — Sync Orchestrators.

Two orchestrators, each a small state machine (IDLE ⇄ RUNNING):

- EntitySyncOrchestrator: client API → users / projects / reals / units
- EventSyncOrchestrator: analytics API → event collections → durations

A run only starts when the orchestrator is IDLE *and* the shared
SyncCoordinator lock is free. Otherwise the fire is skipped and logged,
never queued. Whatever happens inside a run, the orchestrator returns to
IDLE and releases the lock.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from pymongo.database import Database

from realsync.config import ConfigurationError, settings
from realsync.connectors.analytics.client import AnalyticsClient
from realsync.connectors.client_api.client import ClientAPI
from realsync.core.event_registry import SYNCED_EVENT_TYPES
from realsync.core.logging import get_logger
from realsync.models.store_models import USERS
from realsync.models.sync_models import (
    EventSyncSummary,
    RunStatus,
    SyncMode,
    SyncRunRecord,
    SyncState,
)
from realsync.sync.coordinator import SyncCoordinator
from realsync.sync.durations import sync_real_durations
from realsync.sync.event_router import route_events
from realsync.sync.reconciler import EntityReconciler

logger = get_logger("sync.orchestrators")

EVENT_PAGE_PAUSE = 0.35  # seconds
PARTIAL_WINDOW = timedelta(hours=1)

Sleep = Callable[[float], Awaitable[Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Base state machine shared by both orchestrators."""

    name = "sync"
    modes: Tuple[SyncMode, ...] = ()

    def __init__(self, coordinator: SyncCoordinator):
        self.coordinator = coordinator
        self.state = SyncState.IDLE
        self.last_run: Optional[SyncRunRecord] = None

    async def _execute(self, mode: SyncMode) -> Dict[str, Any]:
        raise NotImplementedError

    def _skip(self, mode: SyncMode, reason: str) -> SyncRunRecord:
        logger.warning(
            f"⛔ {self.name}: skipped ({reason})",
            extra={"orchestrator": self.name, "mode": mode.value},
        )
        return SyncRunRecord(
            orchestrator=self.name,
            mode=mode,
            status=RunStatus.SKIPPED,
            started_at=_now(),
            finished_at=_now(),
            error=reason,
        )

    async def run(self, mode: SyncMode) -> SyncRunRecord:
        """Run once in `mode` unless this or the sibling orchestrator is busy."""
        if mode not in self.modes:
            raise ValueError(f"{self.name} does not support mode {mode.value}")

        if self.state is SyncState.RUNNING:
            return self._skip(mode, "previous run still in progress")
        if not self.coordinator.try_acquire(self.name):
            return self._skip(mode, f"{self.coordinator.holder} is running")

        self.state = SyncState.RUNNING
        record = SyncRunRecord(
            orchestrator=self.name,
            mode=mode,
            status=RunStatus.COMPLETED,
            started_at=_now(),
        )
        log_extra = {"orchestrator": self.name, "mode": mode.value}
        started = time.perf_counter()
        try:
            logger.info(f"▶ START: {self.name} ({mode.value})", extra=log_extra)
            record.detail = await self._execute(mode)
        except Exception as e:
            record.status = RunStatus.FAILED
            record.error = str(e)
            logger.exception(f"❌ ERROR in {self.name}: {e}", extra=log_extra)
        finally:
            self.state = SyncState.IDLE
            self.coordinator.release(self.name)
            record.finished_at = _now()
            self.last_run = record

        duration_ms = round((time.perf_counter() - started) * 1000)
        if record.status is RunStatus.COMPLETED:
            logger.info(
                f"✔ FINISHED: {self.name} ({mode.value})",
                extra={**log_extra, "duration_ms": duration_ms},
            )
        return record


class EntitySyncOrchestrator(SyncOrchestrator):
    """Syncs the tracked account's users, projects, reals and units."""

    name = "entity_sync"
    modes = (SyncMode.INCREMENTAL, SyncMode.FULL)

    def __init__(
        self,
        coordinator: SyncCoordinator,
        db: Database,
        client_factory: Callable[[str], ClientAPI] = ClientAPI,
        admin_id: str | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(coordinator)
        self.db = db
        self.client_factory = client_factory
        self.admin_id = admin_id
        self._sleep = sleep

    def _tracked_token(self) -> str:
        """Cached bearer token of the tracked account."""
        admin_id = self.admin_id or settings.require("admin_id")
        user = self.db[USERS].find_one({"userId": admin_id}, {"authToken": 1})
        if not user:
            raise ConfigurationError(f"Tracked user not found: {admin_id}")
        if not user.get("authToken"):
            raise ConfigurationError(f"No cached authToken for tracked user {admin_id}")
        return user["authToken"]

    async def _execute(self, mode: SyncMode) -> Dict[str, Any]:
        token = self._tracked_token()
        async with self.client_factory(token) as client:
            reconciler = EntityReconciler(self.db, client, sleep=self._sleep)
            summary = await reconciler.reconcile(mode)
        return summary.model_dump()


class EventSyncOrchestrator(SyncOrchestrator):
    """Pulls every tracked event type into its collection."""

    name = "event_sync"
    modes = (SyncMode.PARTIAL, SyncMode.FULL)

    def __init__(
        self,
        coordinator: SyncCoordinator,
        db: Database,
        analytics: AnalyticsClient,
        event_types: Iterable[str] = SYNCED_EVENT_TYPES,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = _now,
    ):
        super().__init__(coordinator)
        self.db = db
        self.analytics = analytics
        self.event_types = tuple(event_types)
        self._sleep = sleep
        self._clock = clock

    async def _execute(self, mode: SyncMode) -> Dict[str, Any]:
        summary = EventSyncSummary()
        since = None if mode is SyncMode.FULL else self._clock() - PARTIAL_WINDOW

        for event_type in self.event_types:
            try:
                summary.saved[event_type] = await self.sync_event_type(event_type, since)
            except Exception as e:
                summary.failed.append(event_type)
                logger.error(
                    f"❌ Sync failed for {event_type}: {e}",
                    extra={"event_type": event_type, "mode": mode.value},
                )

        if mode is SyncMode.FULL:
            summary.durations_updated = await sync_real_durations(
                self.db, sleep=self._sleep
            )
        if summary.failed:
            logger.warning(f"Event types failed this cycle: {summary.failed}")
        return summary.model_dump()

    async def sync_event_type(
        self, event_type: str, since: Optional[datetime] = None
    ) -> int:
        """Page through one event type and upsert it; returns upserts written."""
        total = 0
        page = 1
        cursor: Optional[str] = None
        while True:
            result = await self.analytics.fetch_events(
                event_type, since=since, cursor=cursor
            )
            logger.info(
                f"📦 {event_type}: page {page}, API returned {len(result.items)}",
                extra={"event_type": event_type},
            )
            if result.invalid:
                logger.warning(
                    f"⚠ {event_type}: skipped {result.invalid} malformed events on page {page}",
                    extra={"event_type": event_type},
                )
            matching = [ev for ev in result.items if ev.event == event_type]
            if matching:
                total += await route_events(
                    self.db, event_type, matching, sleep=self._sleep
                )

            cursor = result.next_cursor
            if not cursor:
                break
            page += 1
            await self._sleep(EVENT_PAGE_PAUSE)

        logger.info(
            f"✔ COMPLETED {event_type} — Total Saved: {total}",
            extra={"event_type": event_type},
        )
        return total


class SyncRuntime:
    """The coordinator plus both orchestrators, built once per process."""

    def __init__(
        self,
        db: Database,
        analytics: AnalyticsClient | None = None,
        coordinator: SyncCoordinator | None = None,
    ):
        self.db = db
        self.coordinator = coordinator or SyncCoordinator()
        self.analytics = analytics or AnalyticsClient()
        self.entity_sync = EntitySyncOrchestrator(self.coordinator, db)
        self.event_sync = EventSyncOrchestrator(self.coordinator, db, self.analytics)

    def status(self) -> Dict[str, Any]:
        return {
            "lock_holder": self.coordinator.holder,
            "orchestrators": {
                o.name: {
                    "state": o.state.value,
                    "last_run": o.last_run.model_dump(mode="json") if o.last_run else None,
                }
                for o in (self.entity_sync, self.event_sync)
            },
        }

    async def aclose(self) -> None:
        await self.analytics.close()
