"""realsync — External API Payload Models.

Wire shapes of the client API and the analytics API. Envelope handling
lives in the decode functions at the bottom so callers always receive one
canonical list type. Items are validated one at a time: a malformed record
is logged and left out, and the rest of its page is kept.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from realsync.core.logging import get_logger

logger = get_logger("models.external")

ModelT = TypeVar("ModelT", bound=BaseModel)


# ── Client API ──


class ExternalUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    name: str = ""
    email: Optional[str] = None
    role: str = "User"
    client_id: str = ""
    projects_allowed: List[str] = Field(default_factory=list)
    refreshTokenHash: Optional[str] = None


class UserProfile(BaseModel):
    """Response body of GET /auth/me."""

    user: ExternalUser


class ExternalProject(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    name: Optional[str] = None


class ExternalUnit(BaseModel):
    """A slide entry carried inside a real payload."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    unitId: Optional[str] = None
    unitName: Optional[str] = None
    availability: Optional[str] = None


class ExternalReal(BaseModel):
    """A real as returned by GET /auth/bff/reals.

    Unknown fields are kept (`extra="allow"`) so `raw_payload()` can store
    the whole source record.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    project_id: Optional[str] = None
    intro_screen_text: Optional[str] = None
    client_id: Optional[str] = None
    entities: List[ExternalUnit] = Field(default_factory=list)

    @field_validator("entities", mode="before")
    @classmethod
    def _null_entities(cls, value: Any) -> Any:
        return [] if value is None else value

    def raw_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Pagination(BaseModel):
    total: int = 0
    limit: int = 0
    offset: int = 0
    hasMore: bool = False


class RealsPage(BaseModel):
    items: List[ExternalReal]
    has_more: bool = False
    invalid: int = 0  # records on this page that failed validation


# ── Analytics API ──


class RawEvent(BaseModel):
    """One captured analytics event."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    distinct_id: Optional[str] = None
    event: str = ""
    timestamp: Optional[datetime] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _null_properties(cls, value: Any) -> Any:
        return {} if value is None else value


class EventsPage(BaseModel):
    items: List[RawEvent]
    next_cursor: Optional[str] = None
    invalid: int = 0


# ── Envelope decoding ──


def _unwrap(payload: Any, key: str) -> List[Any]:
    """Accept either a bare list or a `{key: [...]}` envelope."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return payload.get(key) or []
    return []


def _validate_each(
    model: Type[ModelT], records: List[Any], what: str
) -> Tuple[List[ModelT], int]:
    """Validate records one by one; returns the valid ones and the reject count."""
    valid: List[ModelT] = []
    invalid = 0
    for record in records:
        try:
            valid.append(model.model_validate(record))
        except ValidationError as e:
            invalid += 1
            record_id = record.get("_id", record.get("id")) if isinstance(record, dict) else None
            logger.warning(
                f"⚠ Skipping invalid {what} {record_id}: "
                f"{e.error_count()} validation errors"
            )
    return valid, invalid


def decode_projects(payload: Any) -> List[ExternalProject]:
    projects, _ = _validate_each(ExternalProject, _unwrap(payload, "projects"), "project")
    return projects


def decode_reals_page(payload: Any) -> RealsPage:
    """Decode a reals response; a bare list is treated as the last page."""
    items, invalid = _validate_each(ExternalReal, _unwrap(payload, "reals"), "real")
    has_more = False
    if isinstance(payload, dict) and payload.get("pagination"):
        has_more = Pagination.model_validate(payload["pagination"]).hasMore
    return RealsPage(items=items, has_more=has_more, invalid=invalid)


def decode_events_page(payload: Any) -> EventsPage:
    body = payload if isinstance(payload, dict) else {}
    items, invalid = _validate_each(RawEvent, body.get("results") or [], "event")
    return EventsPage(items=items, next_cursor=body.get("next") or None, invalid=invalid)
