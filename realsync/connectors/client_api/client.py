"""realsync — Client API Adapter.

Typed calls to the product/auth API: authenticated user, projects and
paginated reals. Transport failures are surfaced as-is; deciding what to
do about them is the caller's job.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from realsync.config import settings
from realsync.core.logging import get_logger
from realsync.models.external_models import (
    ExternalProject,
    RealsPage,
    UserProfile,
    decode_projects,
    decode_reals_page,
)

logger = get_logger("client_api")


class ClientAPIError(Exception):
    """Raised when the client API call fails or returns an unusable body."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class ClientAuthError(ClientAPIError):
    """The bearer token was rejected."""


class ClientAPI:
    """Async HTTP client for the client API, bound to one bearer token."""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.base_url = (base_url or settings.client_api_url).rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "ClientAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Core Request Method ──

    async def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        try:
            resp = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise ClientAPIError(f"GET {path} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise ClientAuthError(
                f"GET {path} rejected the token", resp.status_code
            )
        if resp.status_code >= 400:
            raise ClientAPIError(
                f"GET {path} returned {resp.status_code}", resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ClientAPIError(f"GET {path} returned invalid JSON") from e

    # ── Resources ──

    async def fetch_authenticated_user(self) -> UserProfile:
        """GET /auth/me."""
        body = await self._get("/auth/me")
        try:
            return UserProfile.model_validate(body)
        except ValidationError as e:
            raise ClientAPIError("Invalid auth response from /auth/me") from e

    async def fetch_projects(self) -> List[ExternalProject]:
        """GET /auth/bff/projects — bare list or `{projects: [...]}`."""
        body = await self._get("/auth/bff/projects")
        try:
            projects = decode_projects(body)
        except ValidationError as e:
            raise ClientAPIError("Invalid projects response") from e
        logger.info(f"Fetched {len(projects)} projects")
        return projects

    async def fetch_reals(self, offset: int, limit: int) -> RealsPage:
        """GET /auth/bff/reals?offset&limit."""
        body = await self._get(
            "/auth/bff/reals", params={"offset": offset, "limit": limit}
        )
        try:
            return decode_reals_page(body)
        except ValidationError as e:
            raise ClientAPIError(f"Invalid reals response at offset {offset}") from e
