"""Request authentication - resolve which athlete (if any) a request acts for.

Strategies are tried in a fixed order and the first one that yields a usable
session wins:

1. Personal token (``?token=`` query parameter or ``Authorization: Bearer``)
2. Device fingerprint (User-Agent + Accept headers)
3. Session cookie (``sid`` = athlete id)

A strategy whose lookup hits but whose session is gone or cannot be
refreshed falls through to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from starlette.requests import Request

from .errors import RefreshFailed
from .oauth import SESSION_COOKIE_NAME, device_fingerprint, device_key, personal_token_key
from .session import Session, SessionManager
from .store import CredentialStore, get_json

logger = logging.getLogger(__name__)

PERSONAL_TOKEN = "personal_token"
DEVICE_FINGERPRINT = "device_fingerprint"
SESSION_COOKIE = "session_cookie"


@dataclass(frozen=True)
class AuthContext:
    """Authentication outcome passed explicitly to REST and RPC handlers."""

    session: Session | None = None
    method: str | None = None
    refresh_failed: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def subject_id(self) -> int | None:
        return self.session.subject_id if self.session else None

    @property
    def token(self) -> str | None:
        return self.session.access_token if self.session else None


@dataclass(frozen=True)
class Credentials:
    """The raw authentication material carried by a request."""

    personal_token: str | None = None
    user_agent: str | None = None
    accept: str | None = None
    session_cookie: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> Credentials:
        token = request.query_params.get("token")
        if not token:
            authorization = request.headers.get("authorization", "")
            if authorization.lower().startswith("bearer "):
                token = authorization.split(" ", 1)[1].strip()
        return cls(
            personal_token=token or None,
            user_agent=request.headers.get("user-agent"),
            accept=request.headers.get("accept"),
            session_cookie=request.cookies.get(SESSION_COOKIE_NAME),
        )


def parse_subject_id(value: object) -> int | None:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


class AuthResolver:
    """Resolve an AuthContext from request credentials."""

    def __init__(self, store: CredentialStore, sessions: SessionManager) -> None:
        self.store = store
        self.sessions = sessions

    async def resolve(self, request: Request) -> AuthContext:
        return await self.resolve_credentials(Credentials.from_request(request))

    async def resolve_credentials(self, credentials: Credentials) -> AuthContext:
        strategies: list[tuple[str, Callable[[], Awaitable[int | None]]]] = [
            (PERSONAL_TOKEN, lambda: self._subject_from_personal_token(credentials.personal_token)),
            (
                DEVICE_FINGERPRINT,
                lambda: self._subject_from_device(credentials.user_agent, credentials.accept),
            ),
            (SESSION_COOKIE, lambda: self._subject_from_cookie(credentials.session_cookie)),
        ]

        refresh_failed = False
        for method, lookup in strategies:
            subject_id = await lookup()
            if subject_id is None:
                continue

            session = await self.sessions.get(subject_id)
            if session is None:
                logger.info("No session for athlete %s (via %s)", subject_id, method)
                continue

            try:
                session = await self.sessions.ensure_fresh(session)
            except RefreshFailed as e:
                logger.warning("Token refresh failed for athlete %s: %s", subject_id, e.message)
                refresh_failed = True
                continue

            return AuthContext(session=session, method=method)

        return AuthContext(refresh_failed=refresh_failed)

    async def _subject_from_personal_token(self, token: str | None) -> int | None:
        if not token:
            return None
        record = await get_json(self.store, personal_token_key(token))
        return parse_subject_id(record.get("athlete_id")) if record else None

    async def _subject_from_device(self, user_agent: str | None, accept: str | None) -> int | None:
        record = await get_json(self.store, device_key(device_fingerprint(user_agent, accept)))
        return parse_subject_id(record.get("athlete_id")) if record else None

    async def _subject_from_cookie(self, cookie: str | None) -> int | None:
        if not cookie:
            return None
        return parse_subject_id(cookie)
