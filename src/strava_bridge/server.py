"""Strava MCP Bridge - HTTP application and entry point."""

from __future__ import annotations

import argparse
import html
import logging
import os

from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Mount, Route

from .api import StravaApiHandlers
from .auth import AuthResolver
from .config import BridgeConfig
from .errors import AuthorizationDenied, ExchangeFailed, InvalidState, RelayError
from .notify import NotificationRelay
from .oauth import SESSION_COOKIE_MAX_AGE, SESSION_COOKIE_NAME, StravaOAuthService
from .protocol import SERVER_INFO, ProtocolDispatcher, server_descriptor
from .session import SessionManager
from .store import CredentialStore, create_credential_store_from_env
from .webhook import StravaWebhookHandler

logger = logging.getLogger(__name__)

RELAY_TEST_MESSAGE = (
    "🏃 Test Strava Webhook!\n\n"
    "**Morning Run - Webhook Integration Test**\n"
    "Type: Run\n"
    "Distance: 10.50 km\n"
    "Duration: 52m\n"
    "Pace: 4:57 /km\n\n"
    "✨ This is a test notification from your Strava MCP bridge!"
)


def render_retry_page(title: str, detail: str, status_code: int = 400) -> HTMLResponse:
    """Minimal error page offering another pass through /auth."""
    body = (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<title>{html.escape(title)}</title></head><body>"
        f"<h1>{html.escape(title)}</h1><p>{html.escape(detail)}</p>"
        "<p><a href='/auth'>Try again</a></p></body></html>"
    )
    return HTMLResponse(body, status_code=status_code)


async def not_found(request: Request, exc: HTTPException) -> Response:
    return JSONResponse({"error": "Not found"}, status_code=404)


async def internal_error(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"error": "Internal server error", "message": "An unexpected error occurred"},
        status_code=500,
    )


def create_app(
    config: BridgeConfig | None = None,
    store: CredentialStore | None = None,
) -> Starlette:
    """Create the bridge application.

    Args:
        config: Bridge settings; read from the environment when omitted
        store: Credential store; chosen from the environment when omitted

    Returns:
        Configured Starlette application
    """
    config = config or BridgeConfig()
    store = store or create_credential_store_from_env()

    sessions = SessionManager(
        store,
        client_id=config.strava_client_id,
        client_secret=config.strava_client_secret,
        timeout=config.strava_http_timeout,
    )
    oauth = StravaOAuthService(config, store, sessions)
    resolver = AuthResolver(store, sessions)
    relay = (
        NotificationRelay(config.poke_api_key, timeout=config.strava_http_timeout)
        if config.poke_api_key
        else None
    )
    webhooks = StravaWebhookHandler(config, store, sessions, relay)
    dispatcher = ProtocolDispatcher(config, store, sessions)
    api = StravaApiHandlers(config, resolver)

    async def index(request: Request) -> Response:
        return JSONResponse(
            {
                "name": SERVER_INFO["name"],
                "version": SERVER_INFO["version"],
                "description": "Model Context Protocol server for Strava API with OAuth authentication",
                "protocol": "mcp",
                **server_descriptor(),
                "endpoints": {
                    "auth": "/auth",
                    "callback": "/callback",
                    "status": "/status",
                    "logout": "/logout",
                    "webhook": "/webhook",
                    "mcp": "/mcp",
                    "api": "/api",
                },
                "authentication": {
                    "type": "oauth2",
                    "url": f"{config.base_url}/auth",
                    "required": True,
                },
                "mcpEndpoint": f"{config.base_url}/mcp",
            }
        )

    async def start_auth(request: Request) -> Response:
        url = await oauth.initiate(request.query_params.get("session"))
        return RedirectResponse(url, status_code=302)

    async def callback(request: Request) -> Response:
        query = request.query_params
        try:
            result = await oauth.complete(
                code=query.get("code"),
                state=query.get("state"),
                error=query.get("error"),
                user_agent=request.headers.get("user-agent"),
                accept=request.headers.get("accept"),
            )
        except AuthorizationDenied as e:
            logger.info("OAuth authorization denied: %s", e.message)
            return render_retry_page("Authorization Failed", e.message)
        except InvalidState as e:
            logger.warning("OAuth callback rejected: %s", e.message)
            return render_retry_page("Authorization Failed", e.message)
        except ExchangeFailed as e:
            logger.error("OAuth code exchange failed: %s", e.message)
            return render_retry_page("Authentication Failed", e.message, status_code=502)

        response = RedirectResponse(result.redirect_url, status_code=302)
        response.set_cookie(
            SESSION_COOKIE_NAME,
            str(result.session.subject_id),
            max_age=SESSION_COOKIE_MAX_AGE,
            path="/",
            secure=True,
            httponly=True,
            samesite="lax",
        )
        return response

    async def status(request: Request) -> Response:
        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        session = await sessions.get(int(cookie)) if cookie and cookie.isdigit() else None
        if session is None:
            return JSONResponse({"authenticated": False, "message": "No active session"})
        return JSONResponse(
            {
                "authenticated": True,
                **session.as_public_dict(),
                "token_expired": session.expires_at <= sessions.now(),
            }
        )

    async def logout(request: Request) -> Response:
        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        if cookie and cookie.isdigit():
            await sessions.delete(int(cookie))
            logger.info("Athlete %s logged out", cookie)
        response = RedirectResponse("/", status_code=302)
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
        return response

    async def test_relay(request: Request) -> Response:
        if relay is None:
            return JSONResponse({"error": "POKE_API_KEY not configured"}, status_code=400)
        try:
            await relay.send(RELAY_TEST_MESSAGE)
        except RelayError as e:
            return JSONResponse({"success": False, "error": e.message}, status_code=502)
        return JSONResponse({"success": True, "message": "Test notification sent to Poke!"})

    async def mcp_info(request: Request) -> Response:
        auth = await resolver.resolve(request)
        result = {**server_descriptor(), "authenticated": auth.is_authenticated}
        if not auth.is_authenticated:
            result["authenticationRequired"] = {
                "message": "Please authenticate with Strava to access your data",
                "authUrl": f"{config.base_url}/auth",
            }
        return JSONResponse({"jsonrpc": "2.0", "method": "server/initialize", "result": result})

    async def mcp_rpc(request: Request) -> Response:
        body = await request.body()
        auth = await resolver.resolve(request)
        return await dispatcher.handle(body, auth)

    routes = [
        Route("/", index),
        Route("/auth", start_auth),
        Route("/callback", callback),
        Route("/status", status),
        Route("/logout", logout, methods=["POST"]),
        Route("/test-poke", test_relay, methods=["POST"]),
        Route("/webhook", webhooks.handle_verification, methods=["GET"]),
        Route("/webhook", webhooks.handle_event, methods=["POST"]),
        Route("/mcp", mcp_info, methods=["GET"]),
        Route("/mcp", mcp_rpc, methods=["POST"]),
        Mount("/api", routes=api.routes()),
    ]

    app = Starlette(
        routes=routes,
        exception_handlers={404: not_found, Exception: internal_error},
    )
    app.state.config = config
    app.state.store = store
    app.state.sessions = sessions
    return app


def main() -> None:
    """Main entry point for the bridge."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Strava MCP Bridge")
    parser.add_argument(
        "--host",
        default=os.getenv("STRAVA_BRIDGE_HOST", "127.0.0.1"),
        help="Interface to bind",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("STRAVA_BRIDGE_PORT", "8000")),
        help="Port to listen on",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
