"""Strava OAuth authorization-code flow and derived credentials.

The flow moves INITIATED -> PENDING_CALLBACK -> EXCHANGED -> SESSION_CREATED,
or to FAILED from any step. A state nonce is single use: it is deleted before
the code exchange starts, so replaying a callback fails with InvalidState.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from .config import BridgeConfig
from .errors import AuthorizationDenied, ExchangeFailed, InvalidState
from .models import TokenResponse
from .session import TOKEN_URL, Session, SessionManager
from .store import CredentialStore, get_json, put_json

logger = logging.getLogger(__name__)

AUTH_URL = "https://www.strava.com/oauth/authorize"
SESSION_COOKIE_NAME = "sid"

DAY_SECONDS = 24 * 60 * 60
STATE_TTL_SECONDS = 10 * 60
SESSION_COOKIE_MAX_AGE = 30 * DAY_SECONDS
LINKED_SESSION_TTL_SECONDS = 30 * DAY_SECONDS
DEVICE_BINDING_TTL_SECONDS = 30 * DAY_SECONDS
PERSONAL_TOKEN_TTL_SECONDS = 365 * DAY_SECONDS


def state_key(state: str) -> str:
    return f"state:{state}"


def personal_token_key(token: str) -> str:
    return f"personal_mcp:{token}"


def device_key(fingerprint: str) -> str:
    return f"device_auth:{fingerprint}"


def linked_session_key(session_id: str) -> str:
    return f"user_session:{session_id}"


def generate_state() -> str:
    """Generate a random state nonce for CSRF protection."""
    return secrets.token_hex(32)


def generate_personal_token() -> str:
    return secrets.token_hex(24)


def device_fingerprint(user_agent: str | None, accept: str | None) -> str:
    """Hash of coarse request headers.

    This is a weak lookup aid, not a device binding: any two clients sending
    the same User-Agent and Accept headers share a fingerprint.
    """
    combined = f"{user_agent or ''}:{accept or ''}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:32]


@dataclass
class LoginResult:
    """Outcome of a completed authorization flow."""

    session: Session
    personal_token: str
    fingerprint: str
    redirect_url: str


class StravaOAuthService:
    """Handle the Strava OAuth flow and mint the credentials derived from it."""

    def __init__(
        self,
        config: BridgeConfig,
        store: CredentialStore,
        sessions: SessionManager,
    ) -> None:
        self.config = config
        self.store = store
        self.sessions = sessions
        self.scopes = config.scopes

    def build_authorization_url(self, state: str) -> str:
        """Generate the Strava authorization URL for the given state."""
        params = {
            "client_id": self.config.strava_client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "approval_prompt": "auto",
            "scope": ",".join(self.scopes),
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def initiate(self, linked_session_id: str | None = None) -> str:
        """Persist a pending state and return the URL to send the athlete to."""
        state = generate_state()
        await put_json(
            self.store,
            state_key(state),
            {
                "pending": True,
                "session_id": linked_session_id or None,
                "created_at": self.sessions.now(),
            },
            ttl=STATE_TTL_SECONDS,
        )
        return self.build_authorization_url(state)

    async def consume_state(self, state: str) -> dict[str, Any] | None:
        """Remove and return a pending state record."""
        pending = await get_json(self.store, state_key(state))
        if pending is None:
            return None
        await self.store.delete(state_key(state))
        return pending

    async def exchange_code(self, code: str) -> TokenResponse:
        """Exchange an authorization code for OAuth tokens."""
        try:
            async with httpx.AsyncClient(timeout=self.config.strava_http_timeout) as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.config.strava_client_id,
                        "client_secret": self.config.strava_client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as e:
            raise ExchangeFailed(f"Network error while contacting Strava: {e}") from e

        if response.is_error:
            logger.error("Token exchange failed with status %s", response.status_code)
            raise ExchangeFailed("Failed to exchange authorization code for tokens")

        try:
            token_data = TokenResponse(**response.json())
        except (ValueError, ValidationError) as e:
            raise ExchangeFailed("Strava returned an invalid token response") from e
        if token_data.athlete is None:
            raise ExchangeFailed("Strava token response did not identify the athlete")
        return token_data

    async def complete(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        user_agent: str | None = None,
        accept: str | None = None,
    ) -> LoginResult:
        """Finish the flow started by :meth:`initiate`.

        Raises:
            AuthorizationDenied: Strava reported an authorization error.
            InvalidState: ``code``/``state`` missing, or state unknown/expired/used.
            ExchangeFailed: The token endpoint rejected the code.
        """
        if error:
            raise AuthorizationDenied(f"Strava authorization failed: {error}")
        if not code or not state:
            raise InvalidState("Missing authorization code or state parameter")

        pending = await self.consume_state(state)
        if pending is None:
            raise InvalidState("Invalid or expired state parameter")

        token_data = await self.exchange_code(code)
        now = self.sessions.now()
        session = Session.from_token_response(token_data, self.scopes, now)
        await self.sessions.put(session)
        logger.info("Session created for athlete %s", session.subject_id)

        linked_session_id = pending.get("session_id")
        if linked_session_id:
            await put_json(
                self.store,
                linked_session_key(str(linked_session_id)),
                {"athlete_id": session.subject_id, "authenticated": True, "created_at": now},
                ttl=LINKED_SESSION_TTL_SECONDS,
            )

        fingerprint = device_fingerprint(user_agent, accept)
        await self.bind_device(fingerprint, session.subject_id, user_agent)
        token = await self.mint_personal_token(session.subject_id)

        return LoginResult(
            session=session,
            personal_token=token,
            fingerprint=fingerprint,
            redirect_url=f"{self.config.dashboard_url}?{urlencode({'token': token})}",
        )

    async def bind_device(
        self, fingerprint: str, subject_id: int, user_agent: str | None = None
    ) -> None:
        await put_json(
            self.store,
            device_key(fingerprint),
            {
                "athlete_id": subject_id,
                "created_at": self.sessions.now(),
                "user_agent": (user_agent or "")[:100],
            },
            ttl=DEVICE_BINDING_TTL_SECONDS,
        )

    async def mint_personal_token(self, subject_id: int) -> str:
        """Create a long-lived token mapped to ``subject_id``.

        There is no revocation: tokens stay valid until their TTL lapses,
        including after the athlete logs out.
        """
        token = generate_personal_token()
        now = self.sessions.now()
        await put_json(
            self.store,
            personal_token_key(token),
            {
                "athlete_id": subject_id,
                "created_at": now,
                "expires_at": now + PERSONAL_TOKEN_TTL_SECONDS,
            },
            ttl=PERSONAL_TOKEN_TTL_SECONDS,
        )
        return token
