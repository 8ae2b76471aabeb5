"""realsync — Analytics API Client.

Fetches captured events by type, following `next` cursors, with bounded
retry and exponential backoff.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from realsync.config import settings
from realsync.core.logging import get_logger
from realsync.models.external_models import EventsPage, decode_events_page

logger = get_logger("analytics.client")

FETCH_LIMIT = 500
MAX_ATTEMPTS = 6
RETRY_BASE_DELAY = 0.5  # seconds; doubled per attempt


class AnalyticsAPIError(Exception):
    """Raised for a single failed analytics API request."""

    def __init__(self, message: str, status_code: int = 0, retry_after: float = 0):
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class ExhaustedRetriesError(AnalyticsAPIError):
    """Every attempt for a page failed."""


def _retry_after_seconds(response: httpx.Response) -> float:
    value = response.headers.get("Retry-After")
    if not value:
        return 0
    try:
        return max(float(value), 0)
    except ValueError:
        return 0


class AnalyticsClient:
    """Async HTTP client for the analytics events API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.base_url = (base_url or settings.analytics_api_url).rstrip("/")
        self.api_key = api_key or settings.analytics_api_key
        self.max_attempts = max_attempts
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request_once(
        self, url: str, params: Dict[str, Any] | None
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise AnalyticsAPIError(f"Request error: {e}") from e

        if resp.status_code == 429:
            raise AnalyticsAPIError(
                "Rate limited (429)", 429, retry_after=_retry_after_seconds(resp)
            )
        if resp.status_code >= 400:
            raise AnalyticsAPIError(
                f"API error {resp.status_code}", resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise AnalyticsAPIError("Invalid JSON body", resp.status_code) from e

    async def _request(
        self, url: str, params: Dict[str, Any] | None = None
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        last_error: AnalyticsAPIError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._request_once(url, params)
            except AnalyticsAPIError as e:
                last_error = e

            if attempt == self.max_attempts:
                break
            wait = RETRY_BASE_DELAY * (2**attempt)
            if last_error.status_code == 429:
                wait = max(wait, last_error.retry_after)
                logger.warning(
                    f"Rate limit hit. Retrying in {wait}s (attempt {attempt}/{self.max_attempts})",
                    extra={"status_code": 429},
                )
            else:
                logger.warning(
                    f"{last_error}. Retrying in {wait}s (attempt {attempt}/{self.max_attempts})",
                    extra={"status_code": last_error.status_code},
                )
            await self._sleep(wait)

        raise ExhaustedRetriesError(
            f"Analytics API failed after {self.max_attempts} attempts: {last_error}",
            last_error.status_code if last_error else 0,
        )

    # ── Events ──

    async def fetch_events(
        self,
        event_type: str,
        since: Optional[datetime] = None,
        cursor: Optional[str] = None,
    ) -> EventsPage:
        """Fetch one page of events.

        Without a cursor the first page is requested, optionally bounded by
        `since`. With a cursor (the previous page's `next` URL) that URL is
        followed verbatim.
        """
        if cursor:
            body = await self._request(cursor)
        else:
            params: Dict[str, Any] = {"event": event_type, "limit": FETCH_LIMIT}
            if since is not None:
                params["after"] = since.isoformat()
            body = await self._request(f"{self.base_url}/events", params)
        return decode_events_page(body)
