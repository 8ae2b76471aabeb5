"""realsync — Login-Triggered Sync Routes.

A user presenting a client-API bearer token gets their account mirrored
into the store. That cached token is what the scheduled entity sync
later uses for the tracked account.
"""

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pymongo.database import Database

from realsync.connectors.client_api.client import (
    ClientAPI,
    ClientAPIError,
    ClientAuthError,
)
from realsync.core.logging import get_logger
from realsync.database import get_db
from realsync.models.store_models import USERS
from realsync.models.sync_models import ReconcileSummary, SyncMode
from realsync.sync.reconciler import EntityReconciler, project_sync_due, record_login

logger = get_logger("api.login")

router = APIRouter(prefix="/api", tags=["Login"])


def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header missing")
    parts = authorization.split(" ")
    token = parts[1] if len(parts) > 1 else ""
    if not token:
        raise HTTPException(status_code=400, detail="token is required")
    return token


def get_client_factory() -> Callable[[str], ClientAPI]:
    return ClientAPI


async def _reconcile(
    db: Database,
    client_factory: Callable[[str], ClientAPI],
    token: str,
    with_reals: bool,
) -> ReconcileSummary:
    async with client_factory(token) as client:
        reconciler = EntityReconciler(db, client)
        try:
            if with_reals:
                return await reconciler.reconcile(SyncMode.FULL)
            return await reconciler.reconcile_user_and_projects()
        except ClientAuthError as e:
            raise HTTPException(status_code=401, detail=str(e))
        except ClientAPIError as e:
            logger.error(f"Client API failure during login sync: {e}")
            raise HTTPException(status_code=502, detail=str(e))


@router.get("/login")
async def login_sync(
    token: str = Depends(bearer_token),
    db: Database = Depends(get_db),
    client_factory: Callable[[str], ClientAPI] = Depends(get_client_factory),
):
    """Mirror the presenting user's account: user, projects, all reals."""
    summary = await _reconcile(db, client_factory, token, with_reals=True)
    record_login(db, summary.user_id, projects_synced=True)
    return {
        "message": "User, projects & reals mapped successfully",
        "summary": summary.model_dump(),
    }


@router.get("/save-login-time")
async def save_login_time(
    token: str = Depends(bearer_token),
    db: Database = Depends(get_db),
    client_factory: Callable[[str], ClientAPI] = Depends(get_client_factory),
):
    """Record a login; re-sync user and projects at most once an hour."""
    local_user = db[USERS].find_one({"authToken": token}, {"userId": 1})
    if not local_user:
        raise HTTPException(status_code=401, detail="Unauthorized: user not found")

    user_id = str(local_user["userId"])
    due = project_sync_due(db, user_id)
    record_login(db, user_id, projects_synced=False)
    if not due:
        return {"message": "Login updated, project sync not required", "synced": False}

    summary = await _reconcile(db, client_factory, token, with_reals=False)
    record_login(db, user_id, projects_synced=True)
    logger.info(f"{summary.projects} projects synced for {user_id}")
    return {"message": "User & projects synced successfully", "synced": True}
