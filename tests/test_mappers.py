"""Event mapper and registry tests."""

from datetime import datetime, timezone

import pytest
from pymongo import UpdateOne

from realsync.connectors.analytics.mappers import (
    map_drawer_interaction,
    map_pageleave,
    map_pageview,
    map_slide_paused,
    map_slide_resumed,
    map_slide_viewed,
    map_zoom_interaction,
)
from realsync.core.event_registry import (
    EVENT_REGISTRY,
    SYNCED_EVENT_TYPES,
    UnregisteredEventTypeError,
    get_route,
    validate_registry,
)
from realsync.models.external_models import RawEvent


def event(**kwargs) -> RawEvent:
    base = {
        "id": "evt-1",
        "distinct_id": "visitor-1",
        "event": "slide_viewed",
        "timestamp": "2026-03-01T12:00:05Z",
        "properties": {},
    }
    base.update(kwargs)
    return RawEvent.model_validate(base)


SENT_AT = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CAPTURED_AT = datetime(2026, 3, 1, 12, 0, 5, tzinfo=timezone.utc)


def test_pageview_derives_real_id_from_path():
    op = map_pageview(
        event(
            event="$pageview",
            properties={
                "$pathname": "/real/r42",
                "$current_url": "https://tours.example/real/r42",
                "$session_id": "s1",
                "$sent_at": "2026-03-01T12:00:00Z",
            },
        )
    )
    assert op.filter == {"event_id": "evt-1"}
    fields = op.update["$set"]
    assert fields["real_id"] == "r42"
    assert fields["session_id"] == "s1"
    assert fields["distinct_id"] == "visitor-1"
    assert fields["time"] == SENT_AT


def test_pageleave_builds_nested_scroll_and_session():
    op = map_pageleave(
        event(
            event="$pageleave",
            properties={
                "real_id": "r1",
                "project_id": "p1",
                "$session_id": "s1",
                "$session_entry_url": "https://tours.example/real/r1",
                "$prev_pageview_duration": 12.5,
                "$prev_pageview_max_scroll": 900,
                "$prev_pageview_max_scroll_percentage": 0.8,
            },
        )
    )
    fields = op.update["$set"]
    assert fields["prev_pageview_duration"] == 12.5
    assert fields["prev_pageview_scroll"]["max_scroll"] == 900
    assert fields["prev_pageview_scroll"]["max_scroll_percentage"] == 0.8
    assert fields["prev_pageview_scroll"]["last_scroll"] is None
    assert fields["session"] == {
        "id": "s1",
        "entry_url": "https://tours.example/real/r1",
        "entry_pathname": None,
        "entry_host": None,
    }
    # no $sent_at, so the capture timestamp is used
    assert fields["time"] == CAPTURED_AT


def test_slide_viewed_takes_duration_from_asset_delay():
    op = map_slide_viewed(
        event(properties={"real_id": "r1", "slide_id": "s1", "asset_delay": 8})
    )
    fields = op.update["$set"]
    assert fields["duration"] == 8
    assert fields["real_id"] == "r1"
    assert fields["slide_id"] == "s1"


@pytest.mark.parametrize(
    "mapper, specific",
    [
        (map_slide_paused, {"pause_source": "hold", "remaining_time_ms": 1200}),
        (map_slide_resumed, {"previous_pause_source": "hold", "remaining_time_ms": 900}),
        (map_drawer_interaction, {"action": "expanded", "drawer_height": 320}),
        (map_zoom_interaction, {"action": "pinch", "zoom_scale": 1.8}),
    ],
)
def test_slide_interactions_use_capture_time_and_specific_fields(mapper, specific):
    props = {"real_id": "r1", "slide_id": "s1", "$session_id": "sess", **specific}
    op = mapper(event(properties={**props, "$sent_at": "2020-01-01T00:00:00Z"}))

    fields = op.update["$set"]
    assert op.filter == {"event_id": "evt-1"}
    assert fields["time"] == CAPTURED_AT
    assert fields["session_id"] == "sess"
    for key, value in specific.items():
        assert fields[key] == value


def test_event_without_id_uses_composite_key():
    op = map_slide_paused(
        event(id=None, properties={"$session_id": "sess-9", "slide_id": "s1"})
    )
    assert op.filter == {
        "distinct_id": "visitor-1",
        "session_id": "sess-9",
        "time": CAPTURED_AT,
    }


def test_upsert_converts_to_pymongo_operation():
    op = map_zoom_interaction(event()).to_operation()
    assert isinstance(op, UpdateOne)


def test_mappers_are_pure():
    ev = event(properties={"real_id": "r1", "slide_id": "s1", "asset_delay": 4})
    assert map_slide_viewed(ev) == map_slide_viewed(ev)


# =============================================================================
# Registry
# =============================================================================


def test_every_synced_type_is_registered():
    validate_registry()
    assert set(SYNCED_EVENT_TYPES) == set(EVENT_REGISTRY)


def test_collections_are_distinct():
    collections = [route.collection for route in EVENT_REGISTRY.values()]
    assert len(collections) == len(set(collections))


def test_validate_registry_rejects_unknown_type():
    with pytest.raises(UnregisteredEventTypeError):
        validate_registry(["slide_viewed", "$autocapture"])


def test_get_route_unknown_returns_none():
    assert get_route("$autocapture") is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"id": None, "distinct_id": None, "timestamp": None, "properties": {}},
        {"id": None, "distinct_id": None, "properties": {"slide_id": "s1"}},
        {"id": None, "timestamp": None, "properties": {"$session_id": "sess"}},
    ],
)
def test_event_without_usable_key_maps_to_none(overrides):
    assert map_slide_paused(event(**overrides)) is None
    assert map_pageview(event(**overrides)) is None


def test_event_id_alone_is_enough_to_key():
    op = map_slide_paused(event(distinct_id=None, timestamp=None))
    assert op.filter == {"event_id": "evt-1"}
