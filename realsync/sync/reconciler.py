"""realsync — Entity Reconciler.

Brings users, projects, reals and units fetched from the client API into
the store and keeps their linkage consistent:

  user → projects → user↔project links → reals → project↔real links → units

Steps run strictly in that order because each one needs the internal ids
resolved by the previous one. Records that fail validation are dropped
and counted. Any other failure propagates and aborts the reconciliation;
every write is an idempotent upsert or `$addToSet`, so the next run simply
starts over.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument, UpdateOne
from pymongo.database import Database

from realsync.connectors.client_api.client import ClientAPI
from realsync.core.logging import get_logger
from realsync.models.external_models import ExternalReal
from realsync.models.store_models import (
    PROJECTS,
    REALS,
    UNITS,
    USER_LOGIN_TIMES,
    USERS,
    ProjectDocument,
    RealDocument,
    UnitDocument,
    UserDocument,
)
from realsync.models.sync_models import ReconcileSummary, SyncMode

logger = get_logger("sync.reconciler")

REALS_PAGE_SIZE = 500
REALS_PAGE_PAUSE = 0.4  # seconds
PROJECT_SYNC_INTERVAL = timedelta(hours=1)

ProjectMap = Dict[str, ObjectId]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EntityReconciler:
    """Reconciles one account's client-API view into the store."""

    def __init__(
        self,
        db: Database,
        client: ClientAPI,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.db = db
        self.client = client
        self._sleep = sleep

    # ── Entry points ──

    async def reconcile(self, mode: SyncMode = SyncMode.FULL) -> ReconcileSummary:
        """Run every step. INCREMENTAL fetches reals past the known count."""
        summary = ReconcileSummary()
        user_oid, client_id = await self.sync_user(summary)
        project_map = await self.sync_projects(user_oid, client_id, summary)

        if not project_map:
            logger.warning("⚠️ No projects to process, skipping reals sync")
            return summary

        offset = 0 if mode is SyncMode.FULL else self.count_linked_reals(user_oid)
        logger.info(
            "🔁 FULL reals fetch (upsert only)"
            if mode is SyncMode.FULL
            else f"➕ Incremental reals fetch from offset {offset}",
            extra={"mode": mode.value},
        )
        reals = await self.fetch_reals(offset, summary)
        self.sync_reals(reals, project_map, client_id, summary)
        logger.info(f"🎉 Reconciliation complete: {summary.model_dump()}")
        return summary

    async def reconcile_user_and_projects(self) -> ReconcileSummary:
        """User, projects and their links only; reals are left alone."""
        summary = ReconcileSummary()
        user_oid, client_id = await self.sync_user(summary)
        await self.sync_projects(user_oid, client_id, summary)
        return summary

    # ── Step 1: user ──

    async def sync_user(self, summary: ReconcileSummary) -> Tuple[ObjectId, str]:
        profile = await self.client.fetch_authenticated_user()
        ext = profile.user
        doc = UserDocument(
            userId=ext.id,
            name=ext.name,
            email=ext.email,
            userType=ext.role,
            client_id=ext.client_id,
            projects_allowed=ext.projects_allowed,
            refreshTokenHash=ext.refreshTokenHash,
            authToken=self.client.token,
        )
        now = _now()
        stored = self.db[USERS].find_one_and_update(
            {"userId": doc.userId},
            {
                "$set": {**doc.model_dump(), "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            projection={"_id": 1},
        )
        summary.user_id = doc.userId
        logger.info(f"✅ User saved: {doc.userId} ({doc.name})")
        return stored["_id"], doc.client_id

    # ── Steps 2–3: projects + user↔project links ──

    async def sync_projects(
        self, user_oid: ObjectId, client_id: str, summary: ReconcileSummary
    ) -> ProjectMap:
        projects = await self.client.fetch_projects()
        if not projects:
            logger.warning("⚠️ No projects found in API response")
            return {}

        now = _now()
        operations = [
            UpdateOne(
                {"projectId": p.id},
                {
                    "$set": {
                        **ProjectDocument(
                            projectId=p.id, projectName=p.name or "", client_id=client_id
                        ).model_dump(),
                        "updated_at": now,
                    },
                    "$setOnInsert": {"status": "Active", "created_at": now},
                },
                upsert=True,
            )
            for p in projects
        ]
        self.db[PROJECTS].bulk_write(operations)

        project_map: ProjectMap = {
            d["projectId"]: d["_id"]
            for d in self.db[PROJECTS].find(
                {"projectId": {"$in": [p.id for p in projects]}}, {"projectId": 1}
            )
        }
        project_oids = list(project_map.values())

        self.db[USERS].update_one(
            {"_id": user_oid}, {"$addToSet": {"projects": {"$each": project_oids}}}
        )
        self.db[PROJECTS].update_many(
            {"_id": {"$in": project_oids}}, {"$addToSet": {"users": user_oid}}
        )
        summary.projects = len(project_map)
        logger.info(f"✅ Processed {len(project_map)} projects")
        return project_map

    # ── Step 4: reals fetch ──

    def count_linked_reals(self, user_oid: ObjectId) -> int:
        """Reals already linked to the user's projects.

        Used as the incremental offset. This assumes upstream only appends;
        deletions or reordering upstream make it skip or re-fetch reals.
        """
        user = self.db[USERS].find_one({"_id": user_oid}, {"projects": 1}) or {}
        project_oids = user.get("projects") or []
        if not project_oids:
            return 0
        return sum(
            len(p.get("reals") or [])
            for p in self.db[PROJECTS].find({"_id": {"$in": project_oids}}, {"reals": 1})
        )

    async def fetch_reals(
        self, offset: int = 0, summary: Optional[ReconcileSummary] = None
    ) -> List[ExternalReal]:
        """Page through /auth/bff/reals from `offset` until hasMore is false.

        Records the client rejected as malformed count towards
        `summary.reals_dropped`.
        """
        reals: List[ExternalReal] = []
        has_more = True
        while has_more:
            page = await self.client.fetch_reals(offset, REALS_PAGE_SIZE)
            reals.extend(page.items)
            if summary is not None:
                summary.reals_dropped += page.invalid
            has_more = page.has_more
            offset += REALS_PAGE_SIZE
            logger.info(f"  Fetched {len(reals)} reals so far...")
            if has_more and not page.items and not page.invalid:
                logger.warning(f"Empty reals page at offset {offset}; stopping")
                break
            if has_more:
                await self._sleep(REALS_PAGE_PAUSE)
        return reals

    # ── Steps 5–7: reals, project↔real links, units ──

    def sync_reals(
        self,
        reals: List[ExternalReal],
        project_map: ProjectMap,
        client_id: str,
        summary: ReconcileSummary,
    ) -> None:
        summary.reals_fetched = len(reals)
        accepted: Dict[str, ExternalReal] = {}
        orphans = 0
        for r in reals:
            if r.project_id and r.project_id in project_map:
                accepted[r.id] = r
            else:
                orphans += 1

        if orphans:
            summary.reals_dropped += orphans
            logger.warning(f"Dropped {orphans} reals with no matching project")
        if not accepted:
            logger.info("✅ No reals to save")
            return

        docs = {
            rid: RealDocument(
                realId=rid,
                realName=r.intro_screen_text or "",
                client_id=client_id or r.client_id or "",
                raw=r.raw_payload(),
            )
            for rid, r in accepted.items()
        }
        summary.reals_written = self._upsert_reals(docs, accepted, project_map)

        real_map = {
            d["realId"]: d["_id"]
            for d in self.db[REALS].find({"realId": {"$in": list(docs)}}, {"realId": 1})
        }
        summary.reals_linked = self._link_project_reals(accepted, project_map, real_map)
        summary.units_written = self._sync_units(accepted, project_map, real_map)

    def _upsert_reals(
        self,
        docs: Dict[str, RealDocument],
        accepted: Dict[str, ExternalReal],
        project_map: ProjectMap,
    ) -> int:
        existing = {
            d["realId"]: d
            for d in self.db[REALS].find(
                {"realId": {"$in": list(docs)}},
                {"realId": 1, "realName": 1, "client_id": 1, "raw": 1},
            )
        }
        logger.info(f"📊 Found {len(existing)} of {len(docs)} reals already stored")

        now = _now()
        operations = []
        for rid, doc in docs.items():
            fields = doc.model_dump()
            stored = existing.get(rid)
            if stored and all(stored.get(k) == v for k, v in fields.items()):
                continue
            operations.append(
                UpdateOne(
                    {"realId": rid},
                    {
                        "$set": {**fields, "updated_at": now},
                        "$addToSet": {"project": project_map[accepted[rid].project_id]},
                        "$setOnInsert": {
                            "units": [],
                            "total_duration": 0,
                            "created_at": now,
                        },
                    },
                    upsert=True,
                )
            )

        if operations:
            self.db[REALS].bulk_write(operations)
            logger.info(f"✅ Saved {len(operations)} new or changed reals")
        return len(operations)

    def _link_project_reals(
        self,
        accepted: Dict[str, ExternalReal],
        project_map: ProjectMap,
        real_map: Dict[str, ObjectId],
    ) -> int:
        reals_by_project: Dict[ObjectId, List[ObjectId]] = defaultdict(list)
        real_operations = []
        for rid, r in accepted.items():
            real_oid = real_map.get(rid)
            if real_oid is None:
                continue
            project_oid = project_map[r.project_id]
            reals_by_project[project_oid].append(real_oid)
            real_operations.append(
                UpdateOne({"_id": real_oid}, {"$addToSet": {"project": project_oid}})
            )
        if not real_operations:
            return 0

        self.db[PROJECTS].bulk_write(
            [
                UpdateOne({"_id": pid}, {"$addToSet": {"reals": {"$each": oids}}})
                for pid, oids in reals_by_project.items()
            ]
        )
        self.db[REALS].bulk_write(real_operations)
        logger.info(f"✅ Linked {len(real_operations)} reals to projects")
        return len(real_operations)

    def _sync_units(
        self,
        accepted: Dict[str, ExternalReal],
        project_map: ProjectMap,
        real_map: Dict[str, ObjectId],
    ) -> int:
        operations = []
        units_by_real: Dict[ObjectId, List[str]] = defaultdict(list)
        for rid, r in accepted.items():
            real_oid = real_map.get(rid)
            if real_oid is None:
                continue
            for unit in r.entities:
                if not unit.unitId:
                    continue
                doc = UnitDocument(
                    unitId=unit.unitId,
                    unitName=unit.unitName or "",
                    availability=unit.availability or "Available",
                )
                operations.append(
                    UpdateOne(
                        {"unitId": doc.unitId},
                        {
                            "$set": {
                                **doc.model_dump(),
                                "project": project_map[r.project_id],
                            },
                            "$addToSet": {"real": real_oid},
                        },
                        upsert=True,
                    )
                )
                units_by_real[real_oid].append(doc.unitId)
        if not operations:
            return 0

        self.db[UNITS].bulk_write(operations)
        unit_map = {
            d["unitId"]: d["_id"]
            for d in self.db[UNITS].find(
                {"unitId": {"$in": [u for ids in units_by_real.values() for u in ids]}},
                {"unitId": 1},
            )
        }
        self.db[REALS].bulk_write(
            [
                UpdateOne(
                    {"_id": real_oid},
                    {"$addToSet": {"units": {"$each": [unit_map[u] for u in ids if u in unit_map]}}},
                )
                for real_oid, ids in units_by_real.items()
            ]
        )
        logger.info(f"✅ Saved {len(operations)} units")
        return len(operations)


# ── Login bookkeeping ──


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def project_sync_due(db: Database, user_id: str, now: datetime | None = None) -> bool:
    """True when the user's projects were last synced an hour or more ago."""
    now = now or _now()
    record = db[USER_LOGIN_TIMES].find_one({"userId": user_id})
    last_sync = _as_utc((record or {}).get("lastProjectSyncTime"))
    return last_sync is None or now - last_sync >= PROJECT_SYNC_INTERVAL


def record_login(
    db: Database,
    user_id: str,
    projects_synced: bool,
    now: datetime | None = None,
) -> None:
    """Stamp the login time, and the project sync time when a sync happened."""
    now = now or _now()
    fields: Dict[str, Any] = {"userId": user_id, "lastLoginTime": now}
    if projects_synced:
        fields["lastProjectSyncTime"] = now
    db[USER_LOGIN_TIMES].update_one({"userId": user_id}, {"$set": fields}, upsert=True)
