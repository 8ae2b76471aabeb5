"""realsync — Analytics Event Registry.

Maps each analytics event type to the mapper that turns it into an upsert
and the collection it lands in. When a new event type is tracked, register
it here; `validate_registry()` refuses to start otherwise.
"""

from typing import Callable, Dict, Iterable, NamedTuple, Optional, Tuple

from realsync.connectors.analytics.mappers import (
    EventUpsert,
    map_drawer_interaction,
    map_pageleave,
    map_pageview,
    map_slide_paused,
    map_slide_resumed,
    map_slide_viewed,
    map_zoom_interaction,
)
from realsync.models.external_models import RawEvent

Mapper = Callable[[RawEvent], Optional[EventUpsert]]


class EventRoute(NamedTuple):
    mapper: Mapper
    collection: str


class UnregisteredEventTypeError(Exception):
    """A synced event type has no route."""


PAGEVIEW = "$pageview"
PAGELEAVE = "$pageleave"
SLIDE_VIEWED = "slide_viewed"
SLIDE_PAUSED = "slide_paused"
SLIDE_RESUMED = "slide_resumed"
DRAWER_INTERACTION = "drawer_interaction"
ZOOM_INTERACTION = "zoom_interaction"


EVENT_REGISTRY: Dict[str, EventRoute] = {
    PAGEVIEW: EventRoute(map_pageview, "pageview_events"),
    PAGELEAVE: EventRoute(map_pageleave, "pageleave_events"),
    SLIDE_VIEWED: EventRoute(map_slide_viewed, "slide_viewed_events"),
    SLIDE_PAUSED: EventRoute(map_slide_paused, "slide_paused_events"),
    SLIDE_RESUMED: EventRoute(map_slide_resumed, "slide_resumed_events"),
    DRAWER_INTERACTION: EventRoute(
        map_drawer_interaction, "drawer_interaction_events"
    ),
    ZOOM_INTERACTION: EventRoute(map_zoom_interaction, "zoom_interaction_events"),
}

# Order in which an event sync walks the types.
SYNCED_EVENT_TYPES: Tuple[str, ...] = (
    SLIDE_VIEWED,
    PAGELEAVE,
    PAGEVIEW,
    ZOOM_INTERACTION,
    DRAWER_INTERACTION,
    SLIDE_RESUMED,
    SLIDE_PAUSED,
)


def get_route(event_type: str) -> EventRoute | None:
    """Look up the route for an event type."""
    return EVENT_REGISTRY.get(event_type)


def validate_registry(event_types: Iterable[str] = SYNCED_EVENT_TYPES) -> None:
    """Fail fast if any synced event type is missing from the registry."""
    missing = [t for t in event_types if t not in EVENT_REGISTRY]
    if missing:
        raise UnregisteredEventTypeError(
            f"No route registered for event types: {', '.join(missing)}"
        )
