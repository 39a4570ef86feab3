"""Tool catalog and tool handlers for the MCP endpoint.

The catalog is static. Every tool except ``welcome-strava-mcp`` and
``authenticate-strava`` makes exactly one Strava API call with the caller's
access token and returns the response as pretty-printed JSON text.
"""

from __future__ import annotations

import json
import secrets
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.types import CallToolResult, TextContent, Tool, ToolAnnotations

from .auth import AuthContext
from .client import MAX_PER_PAGE, StravaClient, cap_per_page
from .errors import InvalidToolArguments
from .store import CredentialStore, put_json

PENDING_AUTH_TTL_SECONDS = 30 * 60
DEFAULT_STREAM_TYPES = "time,distance,heartrate,cadence,watts"
STREAM_RESOLUTIONS = ("low", "medium", "high")
SEGMENT_ACTIVITY_TYPES = ("running", "riding")

WELCOME_TOOL = "welcome-strava-mcp"
AUTHENTICATE_TOOL = "authenticate-strava"

_READ_ONLY = ToolAnnotations(readOnlyHint=True, openWorldHint=False)

TOOLS: list[Tool] = [
    Tool(
        name=WELCOME_TOOL,
        description=(
            "Welcome message and setup instructions for new users. "
            "Use this first to help users get started."
        ),
        inputSchema={"type": "object", "properties": {}},
        annotations=_READ_ONLY,
    ),
    Tool(
        name=AUTHENTICATE_TOOL,
        description="Get the Strava OAuth authentication URL to connect your account",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="get-recent-activities",
        description="Get recent Strava activities for the authenticated athlete",
        inputSchema={
            "type": "object",
            "properties": {
                "per_page": {
                    "type": "number",
                    "description": f"Number of activities to retrieve (max {MAX_PER_PAGE})",
                    "default": 30,
                }
            },
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-athlete-profile",
        description="Get the authenticated athlete profile information",
        inputSchema={"type": "object", "properties": {}},
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-athlete-stats",
        description="Get athlete activity statistics (recent, YTD, all-time)",
        inputSchema={"type": "object", "properties": {}},
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-activity-details",
        description="Get detailed information about a specific activity",
        inputSchema={
            "type": "object",
            "properties": {
                "activityId": {
                    "type": "number",
                    "description": "The unique identifier of the activity",
                }
            },
            "required": ["activityId"],
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-activity-streams",
        description="Get time-series data streams from a Strava activity",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "number", "description": "The Strava activity identifier"},
                "types": {
                    "type": "string",
                    "description": "Comma-separated list of stream types",
                    "default": DEFAULT_STREAM_TYPES,
                },
                "resolution": {
                    "type": "string",
                    "description": "Data resolution",
                    "enum": list(STREAM_RESOLUTIONS),
                    "default": "high",
                },
            },
            "required": ["id"],
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-starred-segments",
        description="List the segments starred by the authenticated athlete",
        inputSchema={"type": "object", "properties": {}},
        annotations=_READ_ONLY,
    ),
    Tool(
        name="explore-segments",
        description="Explore popular segments in a geographical area",
        inputSchema={
            "type": "object",
            "properties": {
                "bounds": {
                    "type": "string",
                    "description": (
                        "Comma-separated: south_west_lat,south_west_lng,"
                        "north_east_lat,north_east_lng"
                    ),
                },
                "activity_type": {
                    "type": "string",
                    "enum": list(SEGMENT_ACTIVITY_TYPES),
                    "description": "Filter by activity type",
                },
            },
            "required": ["bounds"],
        },
        annotations=_READ_ONLY,
    ),
    Tool(
        name="get-athlete-routes",
        description="List routes created by the authenticated athlete",
        inputSchema={
            "type": "object",
            "properties": {
                "page": {
                    "type": "number",
                    "description": "Page number for pagination",
                    "default": 1,
                },
                "per_page": {
                    "type": "number",
                    "description": "Number of routes per page",
                    "default": 30,
                },
            },
        },
        annotations=_READ_ONLY,
    ),
]


def list_tools() -> list[dict[str, Any]]:
    return [tool.model_dump(mode="json", by_alias=True, exclude_none=True) for tool in TOOLS]


def text_result(text: str, **extra: Any) -> dict[str, Any]:
    """Wrap ``text`` as a tools/call result."""
    result = CallToolResult(content=[TextContent(type="text", text=text)])
    payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    payload.update(extra)
    return payload


def json_result(data: Any) -> dict[str, Any]:
    return text_result(data if isinstance(data, str) else json.dumps(data, indent=2))


def require_id(arguments: dict[str, Any], name: str) -> int:
    """Read a required numeric identifier argument."""
    value = arguments.get(name)
    if value is None or value == "":
        raise InvalidToolArguments(f"{name} is required")
    if isinstance(value, bool):
        raise InvalidToolArguments(f"{name} must be a number")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value))
    except ValueError as e:
        raise InvalidToolArguments(f"{name} must be a number") from e


def optional_choice(arguments: dict[str, Any], name: str, choices: tuple[str, ...]) -> str | None:
    value = arguments.get(name)
    if value is None:
        return None
    if value not in choices:
        raise InvalidToolArguments(f"{name} must be one of: {', '.join(choices)}")
    return value


def auth_prompt(tool_name: str, base_url: str) -> str:
    return (
        "🔐 **Authentication Required**\n\n"
        f"To use {tool_name}, please connect your Strava account first:\n\n"
        f"👉 [Authenticate with Strava]({base_url}/auth)\n\n"
        "Each user authenticates with their own account, so your data stays private.\n\n"
        "After authentication, try your request again."
    )


def welcome_message(auth: AuthContext) -> str:
    firstname = auth.session.firstname if auth.session else None
    return (
        f"🎉 **Welcome back, {firstname or 'athlete'}!**\n\n"
        "Your Strava account is connected and ready to use.\n\n"
        "🏃 **Try asking me:**\n"
        '• "Show me my recent activities"\n'
        '• "What was my heart rate data from my last run?"\n'
        '• "Find challenging climbs near Boulder, Colorado"\n\n'
        "📊 I can access your activities, segments, routes, and stats!"
    )


async def authenticate(
    store: CredentialStore, base_url: str, now: int
) -> dict[str, Any]:
    """Record a pending tool authentication and hand back a session-bound auth URL."""
    user_session = f"user_session_{now}_{secrets.token_hex(6)}"
    await put_json(
        store,
        f"pending_auth:{user_session}",
        {"created_at": now, "status": "pending"},
        ttl=PENDING_AUTH_TTL_SECONDS,
    )
    auth_url = f"{base_url}/auth?session={user_session}"
    text = (
        "🔐 **Strava Authentication**\n\n"
        f"👉 [Connect your Strava account]({auth_url})\n\n"
        "1. Click the link above to authenticate with Strava\n"
        "2. After authentication, come back and try your request again"
    )
    return text_result(text, userSession=user_session)


# Fitness API tools: (client, arguments, subject_id) -> decoded JSON.
ApiTool = Callable[[StravaClient, dict[str, Any], int], Awaitable[Any]]


async def get_recent_activities(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    return await client.get_json(
        "/athlete/activities", params={"per_page": cap_per_page(arguments.get("per_page"))}
    )


async def get_athlete_profile(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    return await client.get_json("/athlete")


async def get_athlete_stats(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    return await client.get_json(f"/athletes/{subject_id}/stats")


async def get_activity_details(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    activity_id = require_id(arguments, "activityId")
    return await client.get_json(f"/activities/{activity_id}")


async def get_activity_streams(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    activity_id = require_id(arguments, "id")
    resolution = optional_choice(arguments, "resolution", STREAM_RESOLUTIONS) or "high"
    return await client.get_json(
        f"/activities/{activity_id}/streams",
        params={
            "keys": arguments.get("types") or DEFAULT_STREAM_TYPES,
            "key_by_type": "true",
            "resolution": resolution,
        },
    )


async def get_starred_segments(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    return await client.get_json("/segments/starred")


async def explore_segments(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    bounds = arguments.get("bounds")
    if not bounds or not isinstance(bounds, str):
        raise InvalidToolArguments("bounds is required")
    return await client.get_json(
        "/segments/explore",
        params={
            "bounds": bounds,
            "activity_type": optional_choice(arguments, "activity_type", SEGMENT_ACTIVITY_TYPES),
        },
    )


async def get_athlete_routes(
    client: StravaClient, arguments: dict[str, Any], subject_id: int
) -> Any:
    params: dict[str, Any] = {}
    if arguments.get("page"):
        params["page"] = require_id(arguments, "page")
    if arguments.get("per_page"):
        params["per_page"] = cap_per_page(arguments["per_page"])
    return await client.get_json(f"/athletes/{subject_id}/routes", params=params)


API_TOOLS: dict[str, ApiTool] = {
    "get-recent-activities": get_recent_activities,
    "get-athlete-profile": get_athlete_profile,
    "get-athlete-stats": get_athlete_stats,
    "get-activity-details": get_activity_details,
    "get-activity-streams": get_activity_streams,
    "get-starred-segments": get_starred_segments,
    "explore-segments": explore_segments,
    "get-athlete-routes": get_athlete_routes,
}
