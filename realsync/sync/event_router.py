"""realsync — Event Router.

Dispatches a batch of same-typed events to its mapper and writes the
resulting upserts in unordered, chunked bulk writes.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Sequence

from pymongo import UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import BulkWriteError, PyMongoError

from realsync.core.event_registry import get_route
from realsync.core.logging import get_logger
from realsync.models.external_models import RawEvent

logger = get_logger("sync.event_router")

CHUNK_SIZE = 1000
CHUNK_PAUSE = 0.05  # seconds


async def chunked_bulk_write(
    collection: Collection,
    operations: Sequence[UpdateOne],
    chunk_size: int = CHUNK_SIZE,
    pause: float = CHUNK_PAUSE,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Write `operations` unordered in chunks; chunk errors are logged, not raised.

    Returns the number of operations written, excluding any that failed.
    """
    written = 0
    for start in range(0, len(operations), chunk_size):
        chunk = list(operations[start : start + chunk_size])
        try:
            collection.bulk_write(chunk, ordered=False)
            written += len(chunk)
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            written += len(chunk) - len(write_errors)
            logger.error(
                f"Bulk write to {collection.name} had {len(write_errors)} failed "
                f"operations in chunk starting at {start}",
                extra={"collection": collection.name},
            )
        except PyMongoError as e:
            logger.error(
                f"Bulk write to {collection.name} failed for chunk starting at {start}: {e}",
                extra={"collection": collection.name},
            )
        if start + chunk_size < len(operations):
            await sleep(pause)
    return written


async def route_events(
    db: Database,
    event_type: str,
    events: List[RawEvent],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Map and upsert a batch of events of one type.

    Unknown event types are logged and skipped, as are events with no usable
    natural key. Returns the number of upserts written.
    """
    route = get_route(event_type)
    if route is None:
        logger.warning(
            f"⚠ Unknown event type: {event_type}", extra={"event_type": event_type}
        )
        return 0
    if not events:
        return 0

    upserts = [route.mapper(ev) for ev in events]
    operations = [u.to_operation() for u in upserts if u is not None]
    keyless = len(upserts) - len(operations)
    if keyless:
        logger.warning(
            f"⚠ Skipped {keyless} {event_type} events with no id, owner or time",
            extra={"event_type": event_type},
        )
    if not operations:
        return 0
    return await chunked_bulk_write(db[route.collection], operations, sleep=sleep)
