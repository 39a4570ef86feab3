"""JSON-RPC 2.0 dispatch for the MCP endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
)
from starlette.responses import JSONResponse

from .auth import AuthContext
from .client import StravaClient
from .config import BridgeConfig
from .errors import InvalidToolArguments, StravaAPIError
from .session import SessionManager
from .store import CredentialStore
from .tools import (
    API_TOOLS,
    AUTHENTICATE_TOOL,
    WELCOME_TOOL,
    auth_prompt,
    authenticate,
    json_result,
    list_tools,
    text_result,
    welcome_message,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "Strava MCP Server", "version": "1.0.0"}
CAPABILITIES = {"tools": {"listChanged": False}}


class RPCError(Exception):
    """A JSON-RPC error to send back instead of a result."""

    def __init__(self, code: int, message: str, data: Any | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return ErrorData(code=self.code, message=self.message, data=self.data).model_dump(
            exclude_none=True
        )


def error_response(request_id: Any, error: RPCError, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "id": request_id, "error": error.to_dict()},
        status_code=status_code,
    )


def server_descriptor() -> dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": CAPABILITIES,
        "serverInfo": SERVER_INFO,
    }


class ProtocolDispatcher:
    """Route JSON-RPC requests to MCP methods and tools."""

    def __init__(
        self,
        config: BridgeConfig,
        store: CredentialStore,
        sessions: SessionManager,
    ) -> None:
        self.config = config
        self.store = store
        self.sessions = sessions

    async def handle(self, body: bytes, auth: AuthContext) -> JSONResponse:
        """Decode one request body and produce its JSON-RPC response."""
        try:
            message = json.loads(body)
        except ValueError:
            return error_response(None, RPCError(PARSE_ERROR, "Parse error"), status_code=400)

        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return error_response(
                request_id, RPCError(INVALID_REQUEST, "Invalid Request"), status_code=400
            )

        request_id = message.get("id")
        try:
            result = await self.dispatch(message["method"], message.get("params"), auth)
        except RPCError as e:
            return error_response(request_id, e)
        except Exception:
            logger.exception("Unhandled error while dispatching %s", message["method"])
            return error_response(request_id, RPCError(INTERNAL_ERROR, "Internal error"))

        return JSONResponse({"jsonrpc": "2.0", "id": request_id, "result": result})

    async def dispatch(self, method: str, params: Any, auth: AuthContext) -> dict[str, Any]:
        if method == "initialize":
            return server_descriptor()
        if method == "notifications/initialized":
            return {}
        if method == "tools/list":
            return {"tools": list_tools()}
        if method == "tools/call":
            return await self.call_tool(params, auth)
        raise RPCError(METHOD_NOT_FOUND, "Method not found", {"method": method})

    async def call_tool(self, params: Any, auth: AuthContext) -> dict[str, Any]:
        """Execute ``tools/call``.

        Unauthenticated callers always get a normal result carrying the
        authentication prompt, whichever tool they asked for.
        """
        if not isinstance(params, dict) or not isinstance(params.get("name"), str):
            raise RPCError(INVALID_PARAMS, "Invalid params", {"message": "Tool name is required"})

        name: str = params["name"]
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise RPCError(
                INVALID_PARAMS,
                "Invalid params",
                {"tool": name, "message": "Tool arguments must be an object"},
            )

        if auth.session is None:
            return text_result(auth_prompt(name, self.config.base_url))

        if name == WELCOME_TOOL:
            return text_result(welcome_message(auth))
        if name == AUTHENTICATE_TOOL:
            return await authenticate(self.store, self.config.base_url, self.sessions.now())

        handler = API_TOOLS.get(name)
        if handler is None:
            raise RPCError(METHOD_NOT_FOUND, "Tool not found", {"tool": name})

        try:
            async with StravaClient(
                auth.session.access_token, timeout=self.config.strava_http_timeout
            ) as client:
                data = await handler(client, arguments, auth.session.subject_id)
        except InvalidToolArguments as e:
            raise RPCError(
                INVALID_PARAMS, "Invalid params", {"tool": name, "message": e.message}
            ) from e
        except StravaAPIError as e:
            logger.warning("Tool %s failed: %s", name, e.message)
            raise RPCError(
                INTERNAL_ERROR, "Internal error", {"tool": name, "message": e.message}
            ) from e
        except Exception as e:
            logger.exception("Tool %s raised unexpectedly", name)
            message = str(e) or type(e).__name__
            raise RPCError(
                INTERNAL_ERROR, "Internal error", {"tool": name, "message": message}
            ) from e

        return json_result(data)
