"""Tests for JSON-RPC dispatch and the MCP tool catalog."""

import json

import pytest

from strava_bridge.auth import PERSONAL_TOKEN, AuthContext
from strava_bridge.oauth import personal_token_key
from strava_bridge.protocol import ProtocolDispatcher
from strava_bridge.store import put_json
from strava_bridge.tools import API_TOOLS
from tests.fixtures.activity_fixtures import (
    ACTIVITY_STREAMS,
    DETAILED_ACTIVITY,
    RECENT_ACTIVITIES,
)
from tests.fixtures.athlete_fixtures import ATHLETE_STATS, SUMMARY_ATHLETE
from tests.helpers import get_json_content, get_text_content, make_session, rpc, seed_session

TOOL_NAMES = [
    "welcome-strava-mcp",
    "authenticate-strava",
    "get-recent-activities",
    "get-athlete-profile",
    "get-athlete-stats",
    "get-activity-details",
    "get-activity-streams",
    "get-starred-segments",
    "explore-segments",
    "get-athlete-routes",
]


@pytest.fixture
def dispatcher(config, store, sessions):
    return ProtocolDispatcher(config, store, sessions)


@pytest.fixture
def authenticated():
    return AuthContext(session=make_session(42), method=PERSONAL_TOKEN)


@pytest.fixture
def anonymous():
    return AuthContext()


async def call(dispatcher, auth, message):
    body = message if isinstance(message, bytes) else json.dumps(message).encode()
    response = await dispatcher.handle(body, auth)
    return response.status_code, json.loads(response.body)


async def call_tool(dispatcher, auth, name, arguments=None):
    params = {"name": name}
    if arguments is not None:
        params["arguments"] = arguments
    return await call(dispatcher, auth, rpc("tools/call", params))


class TestMethods:
    """Test the protocol-level methods."""

    async def test_initialize(self, dispatcher, anonymous):
        status, reply = await call(dispatcher, anonymous, rpc("initialize", {}))

        assert status == 200
        assert reply["jsonrpc"] == "2.0"
        assert reply["id"] == 1
        assert reply["result"] == {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": "Strava MCP Server", "version": "1.0.0"},
        }

    async def test_initialized_notification(self, dispatcher, anonymous):
        _, reply = await call(dispatcher, anonymous, rpc("notifications/initialized"))
        assert reply["result"] == {}

    async def test_tools_list(self, dispatcher, anonymous):
        _, reply = await call(dispatcher, anonymous, rpc("tools/list"))

        tools = reply["result"]["tools"]
        assert [tool["name"] for tool in tools] == TOOL_NAMES
        details = next(tool for tool in tools if tool["name"] == "get-activity-details")
        assert details["inputSchema"]["required"] == ["activityId"]

    async def test_unknown_method(self, dispatcher, anonymous):
        status, reply = await call(dispatcher, anonymous, rpc("resources/list"))

        assert status == 200
        assert reply["error"]["code"] == -32601
        assert reply["error"]["data"] == {"method": "resources/list"}

    async def test_string_ids_are_echoed(self, dispatcher, anonymous):
        _, reply = await call(dispatcher, anonymous, rpc("tools/list", request_id="abc"))
        assert reply["id"] == "abc"


class TestMalformedRequests:
    """Test parse and request-shape errors."""

    async def test_parse_error(self, dispatcher, anonymous):
        status, reply = await call(dispatcher, anonymous, b"{not json")

        assert status == 400
        assert reply["id"] is None
        assert reply["error"]["code"] == -32700

    @pytest.mark.parametrize(
        "message",
        [[1, 2], "tools/list", {"jsonrpc": "2.0", "id": 3}, {"id": 3, "method": 7}],
    )
    async def test_invalid_request(self, dispatcher, anonymous, message):
        status, reply = await call(dispatcher, anonymous, message)

        assert status == 400
        assert reply["error"]["code"] == -32600

    async def test_tools_call_without_name(self, dispatcher, authenticated):
        _, reply = await call(dispatcher, authenticated, rpc("tools/call", {"arguments": {}}))
        assert reply["error"]["code"] == -32602


class TestToolGating:
    """Unauthenticated callers get a prompt instead of data."""

    @pytest.mark.parametrize(
        "name", ["get-recent-activities", "welcome-strava-mcp", "authenticate-strava", "nope"]
    )
    async def test_prompt_for_every_tool(self, dispatcher, anonymous, respx_mock, name):
        _, reply = await call_tool(dispatcher, anonymous, name)

        assert "error" not in reply
        text = get_text_content(reply["result"])
        assert "Authentication Required" in text
        assert "https://bridge.example.com/auth" in text
        assert len(respx_mock.calls) == 0


class TestTools:
    """Test tool execution for authenticated callers."""

    async def test_welcome(self, dispatcher, authenticated, respx_mock):
        _, reply = await call_tool(dispatcher, authenticated, "welcome-strava-mcp")

        assert "Welcome back, Marianne!" in get_text_content(reply["result"])
        assert len(respx_mock.calls) == 0

    async def test_authenticate_records_pending_auth(self, dispatcher, authenticated, store):
        _, reply = await call_tool(dispatcher, authenticated, "authenticate-strava")

        result = reply["result"]
        user_session = result["userSession"]
        assert f"https://bridge.example.com/auth?session={user_session}" in get_text_content(
            result
        )
        pending = json.loads(await store.get(f"pending_auth:{user_session}"))
        assert pending["status"] == "pending"

    async def test_recent_activities(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/athlete/activities", RECENT_ACTIVITIES)

        _, reply = await call_tool(dispatcher, authenticated, "get-recent-activities")

        assert get_json_content(reply["result"]) == RECENT_ACTIVITIES
        request = route.calls.last.request
        assert request.url.params["per_page"] == "30"
        assert request.headers["Authorization"] == "Bearer access-42"

    async def test_per_page_is_capped(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/athlete/activities", [])

        await call_tool(dispatcher, authenticated, "get-recent-activities", {"per_page": 500})

        assert route.calls.last.request.url.params["per_page"] == "200"

    async def test_result_text_is_pretty_json(self, dispatcher, authenticated, stub_api):
        stub_api.stub_get("/athlete", SUMMARY_ATHLETE)

        _, reply = await call_tool(dispatcher, authenticated, "get-athlete-profile")

        assert get_text_content(reply["result"]) == json.dumps(SUMMARY_ATHLETE, indent=2)

    async def test_athlete_stats_uses_subject(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/athletes/42/stats", ATHLETE_STATS)

        _, reply = await call_tool(dispatcher, authenticated, "get-athlete-stats")

        assert route.call_count == 1
        assert get_json_content(reply["result"]) == ATHLETE_STATS

    async def test_activity_details(self, dispatcher, authenticated, stub_api):
        stub_api.stub_activity(DETAILED_ACTIVITY)

        _, reply = await call_tool(
            dispatcher, authenticated, "get-activity-details", {"activityId": DETAILED_ACTIVITY["id"]}
        )

        assert get_json_content(reply["result"])["name"] == "Morning Run"

    async def test_activity_streams_defaults(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/activities/99/streams", ACTIVITY_STREAMS)

        await call_tool(dispatcher, authenticated, "get-activity-streams", {"id": "99"})

        params = route.calls.last.request.url.params
        assert params["keys"] == "time,distance,heartrate,cadence,watts"
        assert params["key_by_type"] == "true"
        assert params["resolution"] == "high"

    async def test_explore_segments(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/segments/explore", {"segments": []})

        await call_tool(
            dispatcher,
            authenticated,
            "explore-segments",
            {"bounds": "37.7,-122.5,37.8,-122.4", "activity_type": "running"},
        )

        params = route.calls.last.request.url.params
        assert params["bounds"] == "37.7,-122.5,37.8,-122.4"
        assert params["activity_type"] == "running"

    async def test_athlete_routes(self, dispatcher, authenticated, stub_api):
        route = stub_api.stub_get("/athletes/42/routes", [])

        await call_tool(
            dispatcher, authenticated, "get-athlete-routes", {"page": 2, "per_page": 1000}
        )

        params = route.calls.last.request.url.params
        assert params["page"] == "2"
        assert params["per_page"] == "200"

    @pytest.mark.parametrize(
        ("name", "arguments"),
        [
            ("get-activity-details", {}),
            ("get-activity-details", {"activityId": "abc"}),
            ("get-activity-details", {"activityId": True}),
            ("get-activity-streams", {}),
            ("get-activity-streams", {"id": 1, "resolution": "ultra"}),
            ("explore-segments", {}),
        ],
    )
    async def test_invalid_arguments(self, dispatcher, authenticated, respx_mock, name, arguments):
        _, reply = await call_tool(dispatcher, authenticated, name, arguments)

        assert reply["error"]["code"] == -32602
        assert reply["error"]["data"]["tool"] == name
        assert len(respx_mock.calls) == 0

    async def test_upstream_failure(self, dispatcher, authenticated, stub_api):
        stub_api.stub_error("/activities/5", status_code=404)

        _, reply = await call_tool(
            dispatcher, authenticated, "get-activity-details", {"activityId": 5}
        )

        assert reply["error"]["code"] == -32603
        assert reply["error"]["data"]["tool"] == "get-activity-details"
        assert "not found" in reply["error"]["data"]["message"].lower()

    async def test_unexpected_tool_failure(self, dispatcher, authenticated, monkeypatch):
        async def broken(client, arguments, subject_id):
            raise KeyError("athlete")

        monkeypatch.setitem(API_TOOLS, "get-athlete-profile", broken)

        status, reply = await call_tool(dispatcher, authenticated, "get-athlete-profile")

        assert status == 200
        assert reply["error"]["code"] == -32603
        assert reply["error"]["data"]["tool"] == "get-athlete-profile"
        assert "athlete" in reply["error"]["data"]["message"]

    async def test_unknown_tool(self, dispatcher, authenticated):
        _, reply = await call_tool(dispatcher, authenticated, "delete-everything")

        assert reply["error"]["code"] == -32601
        assert reply["error"]["message"] == "Tool not found"
        assert reply["error"]["data"] == {"tool": "delete-everything"}


class TestMcpEndpoint:
    """Test /mcp over HTTP."""

    async def test_descriptor_unauthenticated(self, client):
        response = await client.get("/mcp")

        result = response.json()["result"]
        assert result["authenticated"] is False
        assert result["authenticationRequired"]["authUrl"] == "https://bridge.example.com/auth"

    async def test_descriptor_authenticated(self, client, store, sessions):
        await seed_session(sessions, 42)
        await put_json(store, personal_token_key("tok"), {"athlete_id": 42})

        response = await client.get("/mcp", params={"token": "tok"})

        result = response.json()["result"]
        assert result["authenticated"] is True
        assert "authenticationRequired" not in result

    async def test_tool_call_with_personal_token(self, client, store, sessions, stub_api):
        await seed_session(sessions, 42)
        await put_json(store, personal_token_key("tok"), {"athlete_id": 42})
        stub_api.stub_get("/athlete", SUMMARY_ATHLETE)

        response = await client.post(
            "/mcp",
            params={"token": "tok"},
            json=rpc("tools/call", {"name": "get-athlete-profile"}),
        )

        assert response.status_code == 200
        assert get_json_content(response.json()["result"])["id"] == 42

    async def test_parse_error_over_http(self, client):
        response = await client.post("/mcp", content=b"not json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32700
