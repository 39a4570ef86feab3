"""Helper functions for tests."""

import json
import time
from typing import Any

from starlette.requests import Request

from strava_bridge.session import Session, SessionManager

NOW = int(time.time())
BASE_URL = "https://bridge.example.com"
VERIFY_TOKEN = "verify-me"


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_session(
    subject_id: int = 42,
    *,
    expires_at: int = NOW + 6 * 3600,
    access_token: str | None = None,
    refresh_token: str | None = None,
    firstname: str = "Marianne",
) -> Session:
    return Session(
        subject_id=subject_id,
        access_token=access_token or f"access-{subject_id}",
        refresh_token=refresh_token or f"refresh-{subject_id}",
        expires_at=expires_at,
        created_at=NOW - 3600,
        scopes=["activity:read_all"],
        profile={"id": subject_id, "firstname": firstname, "lastname": "Teutenberg"},
    )


async def seed_session(sessions: SessionManager, subject_id: int = 42, **kwargs: Any) -> Session:
    session = make_session(subject_id, **kwargs)
    await sessions.put(session)
    return session


def make_request(
    body: bytes = b"",
    *,
    method: str = "POST",
    path: str = "/",
    query_string: bytes = b"",
    headers: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request for calling handlers directly."""

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string,
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ],
    }
    return Request(scope, receive)


def get_text_content(result: dict[str, Any]) -> str:
    """Extract the text of a tools/call result.

    Raises:
        AssertionError: If the result does not carry exactly one text item
    """
    content = result["content"]
    assert len(content) == 1, "Expected a single content item"
    assert content[0]["type"] == "text", f"Expected text content, got {content[0]['type']}"
    return content[0]["text"]


def get_json_content(result: dict[str, Any]) -> Any:
    return json.loads(get_text_content(result))


def rpc(method: str, params: Any = None, request_id: int = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message
