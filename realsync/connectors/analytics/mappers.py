"""realsync — Analytics Event → Store Upsert Mappers.

One pure function per event type. Each returns an `EventUpsert` keyed by the
event's natural key and `$set`-ing the type-specific fields, or None when the
event carries nothing to key it by.
"""

from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from pymongo import UpdateOne

from realsync.models.external_models import RawEvent

# Page paths look like /real/<realId>
REAL_PATH_PREFIX_LEN = 6


class EventUpsert(NamedTuple):
    filter: Dict[str, Any]
    update: Dict[str, Any]

    def to_operation(self) -> UpdateOne:
        return UpdateOne(self.filter, self.update, upsert=True)


def _parse_time(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sent_at(ev: RawEvent) -> Optional[datetime]:
    """Client send time, falling back to the capture timestamp."""
    return _parse_time(ev.properties.get("$sent_at")) or _parse_time(ev.timestamp)


def _captured_at(ev: RawEvent) -> Optional[datetime]:
    """Capture timestamp, falling back to the client send time."""
    return _parse_time(ev.timestamp) or _parse_time(ev.properties.get("$sent_at"))


def natural_key(ev: RawEvent, time: Optional[datetime]) -> Optional[Dict[str, Any]]:
    """`event_id` when the source has one, else (distinct_id, session_id, time).

    The composite key needs a time and at least one of distinct_id or
    session_id; without them unrelated events would collapse onto one
    document, so None is returned instead.
    """
    if ev.id:
        return {"event_id": ev.id}
    session_id = ev.properties.get("$session_id")
    if time is None or (ev.distinct_id is None and session_id is None):
        return None
    return {"distinct_id": ev.distinct_id, "session_id": session_id, "time": time}


def _upsert(
    ev: RawEvent, time: Optional[datetime], fields: Dict[str, Any]
) -> Optional[EventUpsert]:
    key = natural_key(ev, time)
    if key is None:
        return None
    doc = {**key, "distinct_id": ev.distinct_id, "time": time, **fields}
    return EventUpsert(filter=key, update={"$set": doc})


# ── Mappers ──


def map_pageview(ev: RawEvent) -> Optional[EventUpsert]:
    props = ev.properties
    pathname = props.get("$pathname")
    return _upsert(
        ev,
        _sent_at(ev),
        {
            "current_url": props.get("$current_url"),
            "real_id": pathname[REAL_PATH_PREFIX_LEN:] if pathname else None,
            "session_id": props.get("$session_id"),
        },
    )


def map_pageleave(ev: RawEvent) -> Optional[EventUpsert]:
    props = ev.properties
    return _upsert(
        ev,
        _sent_at(ev),
        {
            "current_url": props.get("$current_url"),
            "real_id": props.get("real_id"),
            "project_id": props.get("project_id"),
            "client_id": props.get("client_id"),
            "session_id": props.get("$session_id"),
            "session_duration_seconds": props.get("session_duration_seconds"),
            "session_duration_formatted": props.get("session_duration_formatted"),
            "prev_pageview_id": props.get("$prev_pageview_id"),
            "prev_pageview_pathname": props.get("$prev_pageview_pathname"),
            "prev_pageview_duration": props.get("$prev_pageview_duration"),
            "prev_pageview_scroll": {
                "last_scroll": props.get("$prev_pageview_last_scroll"),
                "max_scroll": props.get("$prev_pageview_max_scroll"),
                "last_scroll_percentage": props.get(
                    "$prev_pageview_last_scroll_percentage"
                ),
                "max_scroll_percentage": props.get(
                    "$prev_pageview_max_scroll_percentage"
                ),
            },
            "session": {
                "id": props.get("$session_id"),
                "entry_url": props.get("$session_entry_url"),
                "entry_pathname": props.get("$session_entry_pathname"),
                "entry_host": props.get("$session_entry_host"),
            },
            "geoip": {
                "city_name": props.get("$geoip_city_name"),
                "country_name": props.get("$geoip_country_name"),
                "country_code": props.get("$geoip_country_code"),
            },
        },
    )


def map_slide_viewed(ev: RawEvent) -> Optional[EventUpsert]:
    props = ev.properties
    return _upsert(
        ev,
        _sent_at(ev),
        {
            "session_id": props.get("$session_id"),
            "slide_title": props.get("slide_title"),
            "real_id": props.get("real_id"),
            "slide_id": props.get("slide_id"),
            "slide_index": props.get("slide_index"),
            "view_duration": props.get("view_duration"),
            "client_id": props.get("client_id"),
            "total_slides": props.get("total_slides"),
            "project_id": props.get("project_id"),
            "session_duration_seconds": props.get("session_duration_seconds"),
            "session_duration_formatted": props.get("session_duration_formatted"),
            # asset_delay is how long the slide is shown for
            "duration": props.get("asset_delay"),
        },
    )


def _slide_interaction(ev: RawEvent, **extra: Any) -> Optional[EventUpsert]:
    props = ev.properties
    return _upsert(
        ev,
        _captured_at(ev),
        {
            "session_id": props.get("$session_id"),
            "slide_id": props.get("slide_id"),
            "slide_type": props.get("slide_type"),
            "slide_index": props.get("slide_index"),
            "real_id": props.get("real_id"),
            **extra,
        },
    )


def map_slide_paused(ev: RawEvent) -> Optional[EventUpsert]:
    return _slide_interaction(
        ev,
        remaining_time_ms=ev.properties.get("remaining_time_ms"),
        pause_source=ev.properties.get("pause_source"),
    )


def map_slide_resumed(ev: RawEvent) -> Optional[EventUpsert]:
    return _slide_interaction(
        ev,
        remaining_time_ms=ev.properties.get("remaining_time_ms"),
        previous_pause_source=ev.properties.get("previous_pause_source"),
    )


def map_drawer_interaction(ev: RawEvent) -> Optional[EventUpsert]:
    return _slide_interaction(
        ev,
        action=ev.properties.get("action"),
        drawer_height=ev.properties.get("drawer_height"),
    )


def map_zoom_interaction(ev: RawEvent) -> Optional[EventUpsert]:
    return _slide_interaction(
        ev,
        action=ev.properties.get("action"),
        zoom_scale=ev.properties.get("zoom_scale"),
    )
