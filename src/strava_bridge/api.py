"""REST pass-through to the Strava API under ``/api``.

Handlers forward to one Strava endpoint with the resolved athlete's token and
return Strava's JSON unchanged. Upstream failures become a structured 500.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import BaseRoute, Route

from .auth import AuthContext, AuthResolver
from .client import StravaClient, cap_per_page
from .config import BridgeConfig
from .errors import StravaAPIError

logger = logging.getLogger(__name__)

DEFAULT_STREAM_KEYS = "time,distance,heartrate,cadence,watts"

ApiHandler = Callable[[Request, StravaClient, AuthContext], Awaitable[Response]]


class BadRequest(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def unauthorized(auth: AuthContext) -> JSONResponse:
    message = (
        "Authentication expired. Please sign in with Strava again."
        if auth.refresh_failed
        else "Please authenticate with Strava at /auth"
    )
    error = "Authentication expired" if auth.refresh_failed else "Authentication required"
    return JSONResponse({"error": error, "message": message}, status_code=401)


def format_api_error(error: StravaAPIError, context: str) -> dict[str, Any]:
    return {
        "error": "Strava API error",
        "status": error.status_code,
        "message": error.message,
        "context": context,
    }


def path_id(request: Request, kind: str) -> int:
    """Parse the ``{id}`` path segment, rejecting anything non-numeric."""
    raw = request.path_params.get("id", "")
    try:
        return int(raw)
    except ValueError as e:
        raise BadRequest(f"Invalid {kind} ID") from e


def query_int(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class StravaApiHandlers:
    """Authenticated REST handlers mirroring a subset of the Strava API."""

    def __init__(self, config: BridgeConfig, resolver: AuthResolver) -> None:
        self.config = config
        self.resolver = resolver

    def routes(self) -> list[BaseRoute]:
        def route(path: str, handler: ApiHandler, context: str, methods: list[str] | None = None):
            return Route(path, self.endpoint(handler, context), methods=methods or ["GET"])

        return [
            route("/athlete/profile", self.get_athlete_profile, "get athlete profile"),
            route("/athlete/stats", self.get_athlete_stats, "get athlete stats"),
            route("/athlete/zones", self.get_athlete_zones, "get athlete zones"),
            route("/activities/recent", self.get_recent_activities, "get recent activities"),
            route("/activities/all", self.get_all_activities, "get all activities"),
            route("/activities/{id}", self.get_activity_details, "get activity details"),
            route("/activities/{id}/streams", self.get_activity_streams, "get activity streams"),
            route("/activities/{id}/laps", self.get_activity_laps, "get activity laps"),
            route("/segments/starred", self.get_starred_segments, "get starred segments"),
            route("/segments/explore", self.explore_segments, "explore segments"),
            route("/segments/efforts/{id}", self.get_segment_effort, "get segment effort"),
            route("/segments/{id}", self.get_segment, "get segment"),
            route("/segments/{id}/star", self.star_segment, "star segment", ["POST"]),
            route("/segments/{id}/efforts", self.get_segment_efforts, "get segment efforts"),
            route("/routes", self.get_athlete_routes, "get athlete routes"),
            route("/routes/{id}", self.get_route, "get route"),
            route("/routes/{id}/export/gpx", self.export_route_gpx, "export route GPX"),
            route("/routes/{id}/export/tcx", self.export_route_tcx, "export route TCX"),
            route("/clubs", self.get_athlete_clubs, "get athlete clubs"),
        ]

    def endpoint(
        self, handler: ApiHandler, context: str
    ) -> Callable[[Request], Awaitable[Response]]:
        """Wrap ``handler`` with authentication and error mapping."""

        async def run(request: Request) -> Response:
            auth = await self.resolver.resolve(request)
            if auth.session is None:
                return unauthorized(auth)
            try:
                async with StravaClient(
                    auth.session.access_token, timeout=self.config.strava_http_timeout
                ) as client:
                    return await handler(request, client, auth)
            except BadRequest as e:
                return JSONResponse({"error": e.message}, status_code=400)
            except StravaAPIError as e:
                logger.error("Strava API error during %s: %s", context, e.message)
                return JSONResponse(format_api_error(e, context), status_code=500)

        return run

    # Athlete

    async def get_athlete_profile(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return JSONResponse(await client.get_json("/athlete"))

    async def get_athlete_stats(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return JSONResponse(await client.get_json(f"/athletes/{auth.subject_id}/stats"))

    async def get_athlete_zones(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return JSONResponse(await client.get_json("/athlete/zones"))

    async def get_athlete_clubs(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return JSONResponse(await client.get_json("/athlete/clubs"))

    # Activities

    async def get_recent_activities(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        per_page = cap_per_page(request.query_params.get("per_page"))
        return JSONResponse(
            await client.get_json("/athlete/activities", params={"per_page": per_page})
        )

    async def get_all_activities(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        params = {
            "page": max(1, query_int(request, "page", 1)),
            "per_page": cap_per_page(request.query_params.get("per_page")),
        }
        return JSONResponse(await client.get_json("/athlete/activities", params=params))

    async def get_activity_details(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        activity_id = path_id(request, "activity")
        return JSONResponse(await client.get_json(f"/activities/{activity_id}"))

    async def get_activity_streams(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        activity_id = path_id(request, "activity")
        query = request.query_params
        params = {
            "keys": query.get("types") or DEFAULT_STREAM_KEYS,
            "key_by_type": "true",
            "resolution": query.get("resolution") or "high",
            "series_type": query.get("series_type") or "distance",
        }
        return JSONResponse(
            await client.get_json(f"/activities/{activity_id}/streams", params=params)
        )

    async def get_activity_laps(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        activity_id = path_id(request, "activity")
        return JSONResponse(await client.get_json(f"/activities/{activity_id}/laps"))

    # Segments

    async def get_starred_segments(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        params: dict[str, Any] = {}
        if "page" in request.query_params:
            params["page"] = max(1, query_int(request, "page", 1))
        if "per_page" in request.query_params:
            params["per_page"] = cap_per_page(request.query_params["per_page"])
        return JSONResponse(await client.get_json("/segments/starred", params=params))

    async def explore_segments(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        query = request.query_params
        bounds = query.get("bounds")
        if not bounds:
            raise BadRequest("Missing bounds parameter")
        params = {
            "bounds": bounds,
            "activity_type": query.get("activity_type") or None,
            "min_cat": query.get("min_cat") or None,
            "max_cat": query.get("max_cat") or None,
        }
        return JSONResponse(await client.get_json("/segments/explore", params=params))

    async def get_segment(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        segment_id = path_id(request, "segment")
        return JSONResponse(await client.get_json(f"/segments/{segment_id}"))

    async def star_segment(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        segment_id = path_id(request, "segment")
        try:
            body = await request.json()
        except ValueError as e:
            raise BadRequest("Missing or invalid starred parameter") from e
        starred = body.get("starred") if isinstance(body, dict) else None
        if not isinstance(starred, bool):
            raise BadRequest("Missing or invalid starred parameter")
        return JSONResponse(
            await client.request_json(
                "PUT", f"/segments/{segment_id}/starred", json={"starred": starred}
            )
        )

    async def get_segment_effort(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        effort_id = path_id(request, "effort")
        return JSONResponse(await client.get_json(f"/segment_efforts/{effort_id}"))

    async def get_segment_efforts(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        segment_id = path_id(request, "segment")
        query = request.query_params
        params: dict[str, Any] = {
            "segment_id": segment_id,
            "start_date_local": query.get("start_date_local") or None,
            "end_date_local": query.get("end_date_local") or None,
        }
        if "per_page" in query:
            params["per_page"] = cap_per_page(query["per_page"])
        return JSONResponse(await client.get_json("/segment_efforts", params=params))

    # Routes

    async def get_athlete_routes(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        params = {
            "page": max(1, query_int(request, "page", 1)),
            "per_page": cap_per_page(request.query_params.get("per_page")),
        }
        return JSONResponse(
            await client.get_json(f"/athletes/{auth.subject_id}/routes", params=params)
        )

    async def get_route(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        route_id = path_id(request, "route")
        return JSONResponse(await client.get_json(f"/routes/{route_id}"))

    async def export_route_gpx(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return await self._export_route(request, client, "gpx")

    async def export_route_tcx(
        self, request: Request, client: StravaClient, auth: AuthContext
    ) -> Response:
        return await self._export_route(request, client, "tcx")

    async def _export_route(self, request: Request, client: StravaClient, fmt: str) -> Response:
        route_id = path_id(request, "route")
        content = await client.get_text(f"/routes/{route_id}/export_{fmt}")
        return Response(
            content,
            media_type=f"application/{fmt}+xml",
            headers={"Content-Disposition": f'attachment; filename="route_{route_id}.{fmt}"'},
        )
