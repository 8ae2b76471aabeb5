"""HTTP route tests. The app lifespan is not entered, so no scheduler or
real database connection is started."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from realsync.api.login_routes import get_client_factory
from realsync.connectors.client_api.client import ClientAuthError
from realsync.database import get_db
from realsync.main import app
from realsync.models.store_models import REALS, USER_LOGIN_TIMES, USERS
from realsync.sync.orchestrators import SyncRuntime

AUTH = {"Authorization": "Bearer token-abc"}


@pytest.fixture
def client(db, fakes):
    built = []

    def factory(token):
        fake = fakes.ClientAPI(
            token=token, real_pages={0: fakes.page(fakes.real("r1", "p1"))}
        )
        built.append(fake)
        return fake

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_client_factory] = lambda: factory
    app.state.sync_runtime = SyncRuntime(db, analytics=fakes.AnalyticsClient())
    test_client = TestClient(app)
    test_client.built = built
    yield test_client
    app.dependency_overrides.clear()
    del app.state.sync_runtime


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


# =============================================================================
# Login
# =============================================================================


def test_login_without_header_is_rejected(client):
    assert client.get("/api/login").status_code == 401


def test_login_with_empty_token_is_bad_request(client):
    response = client.get("/api/login", headers={"Authorization": "Bearer"})
    assert response.status_code == 400


def test_login_mirrors_account_and_stamps_login(client, db):
    response = client.get("/api/login", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["summary"]["reals_written"] == 1
    user = db[USERS].find_one({"userId": "ext-user-1"})
    assert user["authToken"] == "token-abc"
    assert db[REALS].count_documents({}) == 1
    login = db[USER_LOGIN_TIMES].find_one({"userId": "ext-user-1"})
    assert login["lastProjectSyncTime"] is not None


def test_login_rejected_upstream_maps_to_401(client, fakes):
    class Rejecting(fakes.ClientAPI):
        async def fetch_authenticated_user(self):
            raise ClientAuthError("token expired", 401)

    app.dependency_overrides[get_client_factory] = lambda: Rejecting

    response = client.get("/api/login", headers=AUTH)

    assert response.status_code == 401


def test_login_upstream_failure_maps_to_502(client, fakes):
    app.dependency_overrides[get_client_factory] = lambda: (
        lambda token: fakes.ClientAPI(token=token, fail_on="projects")
    )

    response = client.get("/api/login", headers=AUTH)

    assert response.status_code == 502


# =============================================================================
# Save login time
# =============================================================================


def test_save_login_time_unknown_token(client):
    response = client.get("/api/save-login-time", headers=AUTH)
    assert response.status_code == 401


def test_save_login_time_recent_sync_is_not_repeated(client, db):
    client.get("/api/login", headers=AUTH)
    client.built.clear()

    response = client.get("/api/save-login-time", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["synced"] is False
    assert client.built == []


def test_save_login_time_stale_sync_resyncs_projects(client, db):
    db[USERS].insert_one({"userId": "ext-user-1", "authToken": "token-abc"})
    stale = datetime.now(timezone.utc) - timedelta(hours=2)
    db[USER_LOGIN_TIMES].insert_one(
        {"userId": "ext-user-1", "lastLoginTime": stale, "lastProjectSyncTime": stale}
    )

    response = client.get("/api/save-login-time", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["synced"] is True
    assert client.built[0].real_offsets == []
    assert db["projects"].count_documents({}) == 2


# =============================================================================
# Sync control
# =============================================================================


def test_sync_status(client):
    body = client.get("/sync/status").json()
    assert body["lock_holder"] is None
    assert body["orchestrators"]["event_sync"]["state"] == "idle"


def test_entity_sync_rejects_event_only_mode(client):
    response = client.post("/sync/entities", params={"mode": "partial"})
    assert response.status_code == 422


def test_event_sync_skipped_while_locked(client):
    app.state.sync_runtime.coordinator.try_acquire("entity_sync")

    response = client.post("/sync/events")

    assert response.status_code == 200
    assert response.json()["status"] == "skipped"


def test_event_sync_runs_when_free(client):
    response = client.post("/sync/events", params={"mode": "partial"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["mode"] == "partial"
