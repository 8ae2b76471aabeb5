"""realsync — Real Duration Aggregator.

Recomputes `reals.total_duration` from slide-view events: the first-seen
duration of each (real, slide) pair, summed per real. Repeat views of a
slide are not counted twice.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List

from pymongo import UpdateOne
from pymongo.database import Database

from realsync.core.event_registry import EVENT_REGISTRY, SLIDE_VIEWED
from realsync.core.logging import get_logger
from realsync.models.store_models import REALS
from realsync.sync.event_router import chunked_bulk_write

logger = get_logger("sync.durations")

DURATION_PIPELINE: List[Dict[str, Any]] = [
    {"$match": {"real_id": {"$ne": None}, "slide_id": {"$ne": None}}},
    {"$sort": {"time": 1, "_id": 1}},
    {
        "$group": {
            "_id": {"real_id": "$real_id", "slide_id": "$slide_id"},
            "duration": {"$first": "$duration"},
        }
    },
    {
        "$group": {
            "_id": "$_id.real_id",
            "total_duration": {"$sum": "$duration"},
        }
    },
]


async def sync_real_durations(
    db: Database,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Write per-real `total_duration`; returns how many real updates were written.

    Reals without slide-view events are left untouched, and no real is
    created here.
    """
    logger.info("🔄 Syncing real total_duration (deduped by slide_id)")
    slide_views = db[EVENT_REGISTRY[SLIDE_VIEWED].collection]
    aggregates = list(slide_views.aggregate(DURATION_PIPELINE))

    if not aggregates:
        logger.info("ℹ No slide data found")
        return 0

    operations = [
        UpdateOne(
            {"realId": row["_id"]},
            {"$set": {"total_duration": row["total_duration"]}},
        )
        for row in aggregates
    ]
    updated = await chunked_bulk_write(db[REALS], operations, sleep=sleep)
    logger.info(f"✅ Real duration sync done for {updated} reals")
    return updated
