"""Shared fixtures: an in-memory Mongo database and fake remote clients."""

from typing import Any, Dict, List, Optional

import mongomock
import pytest

from realsync.connectors.client_api.client import ClientAPIError
from realsync.models.external_models import (
    EventsPage,
    ExternalReal,
    RealsPage,
    UserProfile,
    decode_events_page,
    decode_projects,
)


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClientAPI:
    """Client API double serving canned users, projects and real pages."""

    def __init__(
        self,
        token: str = "token-abc",
        user: Optional[Dict[str, Any]] = None,
        projects: Any = None,
        real_pages: Optional[Dict[int, RealsPage]] = None,
        fail_on: Optional[str] = None,
    ):
        self.token = token
        self.user = user or {
            "_id": "ext-user-1",
            "name": "Dana",
            "email": "dana@example.com",
            "role": "Admin",
            "client_id": "client-1",
            "projects_allowed": ["p1", "p2"],
            "refreshTokenHash": "hash",
        }
        self.projects = projects if projects is not None else [
            {"_id": "p1", "name": "Project One"},
            {"_id": "p2", "name": "Project Two"},
        ]
        self.real_pages = real_pages or {}
        self.fail_on = fail_on
        self.real_offsets: List[int] = []
        self.closed = False

    def _maybe_fail(self, call: str) -> None:
        if self.fail_on == call:
            raise ClientAPIError(f"{call} failed", 500)

    async def fetch_authenticated_user(self) -> UserProfile:
        self._maybe_fail("user")
        return UserProfile.model_validate({"user": self.user})

    async def fetch_projects(self):
        self._maybe_fail("projects")
        return decode_projects(self.projects)

    async def fetch_reals(self, offset: int, limit: int) -> RealsPage:
        self._maybe_fail("reals")
        self.real_offsets.append(offset)
        return self.real_pages.get(offset, RealsPage(items=[], has_more=False))

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True


class FakeAnalyticsClient:
    """Analytics double: per-type list of pages, or an exception to raise."""

    def __init__(self, pages: Optional[Dict[str, Any]] = None):
        self.pages = pages or {}
        self.calls: List[Dict[str, Any]] = []

    async def fetch_events(self, event_type, since=None, cursor=None) -> EventsPage:
        self.calls.append({"event_type": event_type, "since": since, "cursor": cursor})
        canned = self.pages.get(event_type, [])
        if isinstance(canned, Exception):
            raise canned
        index = int(cursor) if cursor else 0
        if index >= len(canned):
            return EventsPage(items=[], next_cursor=None)
        next_cursor = str(index + 1) if index + 1 < len(canned) else None
        return decode_events_page({"results": canned[index], "next": next_cursor})

    async def close(self):
        pass


def real_payload(real_id: str, project_id: str, **extra: Any) -> Dict[str, Any]:
    return {
        "_id": real_id,
        "project_id": project_id,
        "intro_screen_text": f"Real {real_id}",
        **extra,
    }


def reals_page(*payloads: Dict[str, Any], has_more: bool = False) -> RealsPage:
    return RealsPage(
        items=[ExternalReal.model_validate(p) for p in payloads], has_more=has_more
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["realsync_test"]


@pytest.fixture
def no_sleep():
    return SleepRecorder()


@pytest.fixture
def fakes():
    """Expose the fake classes and payload helpers to test modules."""

    class _Fakes:
        ClientAPI = FakeClientAPI
        AnalyticsClient = FakeAnalyticsClient
        real = staticmethod(real_payload)
        page = staticmethod(reals_page)

    return _Fakes
