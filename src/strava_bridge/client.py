"""Strava API client with bounded timeouts and typed errors."""

import logging
import types
from typing import Any

import httpx

from .errors import StravaAPIError
from .models import DetailedActivity

logger = logging.getLogger(__name__)

STRAVA_API_BASE_URL = "https://www.strava.com/api/v3"
MAX_PER_PAGE = 200  # Max allowed by Strava API
DEFAULT_TIMEOUT = 10.0


def cap_per_page(value: Any, default: int = 30) -> int:
    """Clamp a page-size argument to Strava's documented maximum."""
    try:
        per_page = int(value) if value is not None else default
    except (TypeError, ValueError):
        per_page = default
    if per_page < 1:
        per_page = default
    return min(per_page, MAX_PER_PAGE)


class StravaClient:
    """Async HTTP client for the Strava API, bound to one access token.

    Token freshness is the caller's concern: sessions are refreshed before a
    client is built, so a 401 here is reported rather than retried.
    """

    BASE_URL = STRAVA_API_BASE_URL

    def __init__(
        self,
        access_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
    ):
        self.access_token = access_token
        self.timeout = timeout
        self.base_url = base_url or self.BASE_URL
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "StravaClient":
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if self._client:
            await self._client.aclose()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an authenticated request and map failures to StravaAPIError."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            response = await self._client.request(
                method,
                endpoint,
                headers=self._get_headers(),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise StravaAPIError(f"Request timed out: {endpoint}") from e
        except httpx.RequestError as e:
            raise StravaAPIError(f"Request failed: {str(e)}") from e

        usage = response.headers.get("X-RateLimit-Usage")
        limit = response.headers.get("X-RateLimit-Limit")
        if usage and limit:
            logger.debug("Strava API rate limit: %s/%s", usage, limit)

        if response.status_code == 401:
            raise StravaAPIError("Strava rejected the access token.", 401)

        if response.status_code == 402:
            raise StravaAPIError(
                "This feature requires a Strava subscription. "
                "Please upgrade your account at https://www.strava.com/settings/subscription",
                402,
            )

        if response.status_code == 404:
            raise StravaAPIError(
                "Resource not found. Please check the ID and try again.",
                404,
            )

        if response.status_code == 429:
            raise StravaAPIError(
                "Rate limit exceeded. Please try again later.",
                429,
            )

        if response.is_error:
            raise StravaAPIError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                response.status_code,
            )
        return response

    async def request_json(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> Any:
        """Call ``path`` and return the decoded JSON body."""
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json is not None:
            kwargs["json"] = json
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise StravaAPIError(f"Invalid JSON returned by {path}", response.status_code) from e

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request_json("GET", path, params=params)

    async def get_text(self, path: str) -> str:
        response = await self._request("GET", path)
        return response.text

    async def get_activity(self, activity_id: int) -> DetailedActivity:
        """Get detailed information about a specific activity."""
        data = await self.get_json(f"/activities/{activity_id}")
        return DetailedActivity(**data)
