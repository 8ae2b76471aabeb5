"""realsync — Store Document Models.

Field sets written to MongoDB by the reconciler. Relation arrays
(`projects`, `users`, `reals`, `project`, `units`, `real`) are never part of
these models: they only change through `$addToSet`, so re-syncing a record
cannot wipe linkage built by an earlier cycle.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

# ── Collection names ──

USERS = "users"
PROJECTS = "projects"
REALS = "reals"
UNITS = "units"
USER_LOGIN_TIMES = "user_login_times"


class UserDocument(BaseModel):
    """Mutable fields of a `users` document, keyed by `userId`."""

    userId: str
    name: str = ""
    email: Optional[str] = None
    userType: str = "User"
    client_id: str = ""
    projects_allowed: List[str] = Field(default_factory=list)
    refreshTokenHash: Optional[str] = None
    authToken: str


class ProjectDocument(BaseModel):
    """Mutable fields of a `projects` document, keyed by `projectId`."""

    projectId: str
    projectName: str = ""
    client_id: str = ""


class RealDocument(BaseModel):
    """Mutable fields of a `reals` document, keyed by `realId`.

    `raw` is the untouched source payload. `total_duration` is owned by the
    duration aggregator and is only initialised on insert.
    """

    realId: str
    realName: str = ""
    client_id: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


class UnitDocument(BaseModel):
    """Mutable fields of a `units` document, keyed by `unitId`."""

    unitId: str
    unitName: str = ""
    availability: str = "Available"


class UserLoginTime(BaseModel):
    """Login bookkeeping used to throttle login-triggered project syncs."""

    userId: str
    lastLoginTime: datetime
    lastProjectSyncTime: Optional[datetime] = None


# ── Index specs: collection → [(keys, options)] ──

IndexSpec = Tuple[List[Tuple[str, int]], Dict[str, Any]]

ENTITY_INDEXES: Dict[str, List[IndexSpec]] = {
    USERS: [
        ([("userId", 1)], {"unique": True}),
        ([("authToken", 1)], {}),
    ],
    PROJECTS: [
        ([("projectId", 1)], {"unique": True}),
        ([("users", 1)], {}),
    ],
    REALS: [
        ([("realId", 1)], {"unique": True}),
        ([("project", 1)], {}),
    ],
    UNITS: [
        ([("unitId", 1)], {"unique": True}),
        ([("real", 1)], {}),
        ([("project", 1)], {}),
    ],
    USER_LOGIN_TIMES: [
        ([("userId", 1)], {"unique": True}),
        ([("lastLoginTime", 1)], {}),
    ],
}

# Every event collection gets the same set; event_id is sparse because
# composite-keyed documents have none.
EVENT_INDEXES: List[IndexSpec] = [
    ([("event_id", 1)], {"unique": True, "sparse": True}),
    ([("distinct_id", 1)], {}),
    ([("session_id", 1)], {}),
    ([("real_id", 1)], {}),
    ([("slide_id", 1)], {}),
    ([("time", -1)], {}),
]
