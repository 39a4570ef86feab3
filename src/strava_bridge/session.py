"""Session management - per-athlete OAuth sessions and token refresh."""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import httpx
from pydantic import ValidationError

from .errors import RefreshFailed
from .models import TokenResponse
from .store import CredentialStore, get_json, put_json

logger = logging.getLogger(__name__)

TOKEN_URL = "https://www.strava.com/oauth/token"
TOKEN_REFRESH_MARGIN_SECONDS = 300


def session_key(subject_id: int) -> str:
    return f"user:{subject_id}"


@dataclass
class Session:
    """Strava credentials for one athlete.

    ``expires_at`` is always the expiry Strava reported for ``access_token``;
    the two are only ever replaced together.
    """

    subject_id: int
    access_token: str
    refresh_token: str
    expires_at: int
    created_at: int
    scopes: list[str] = field(default_factory=list)
    profile: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_token_response(
        cls, token_data: TokenResponse, scopes: Sequence[str], now: int
    ) -> Session:
        if token_data.athlete is None:
            raise ValueError("Token response did not include the athlete profile.")
        return cls(
            subject_id=token_data.athlete.id,
            access_token=token_data.access_token,
            refresh_token=token_data.refresh_token,
            expires_at=token_data.expires_at,
            created_at=now,
            scopes=list(scopes),
            profile=token_data.athlete.model_dump(mode="json", exclude_none=True),
        )

    def with_tokens(self, token_data: TokenResponse) -> Session:
        """Copy of this session carrying a refreshed token triple."""
        return replace(
            self,
            access_token=token_data.access_token,
            refresh_token=token_data.refresh_token,
            expires_at=token_data.expires_at,
        )

    def needs_refresh(self, now: float) -> bool:
        return self.expires_at <= now + TOKEN_REFRESH_MARGIN_SECONDS

    @property
    def firstname(self) -> str | None:
        return self.profile.get("firstname")

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
            "scopes": list(self.scopes),
            "athlete_id": self.subject_id,
            "athlete": self.profile,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            subject_id=int(data["athlete_id"]),
            access_token=str(data["access_token"]),
            refresh_token=str(data["refresh_token"]),
            expires_at=int(data["expires_at"]),
            created_at=int(data.get("created_at") or 0),
            scopes=list(data.get("scopes") or []),
            profile=dict(data.get("athlete") or {}),
        )

    def as_public_dict(self) -> dict[str, Any]:
        """Return a redacted view suitable for logging or status responses."""
        return {
            "athlete_id": self.subject_id,
            "athlete": {
                "id": self.subject_id,
                "firstname": self.profile.get("firstname"),
                "lastname": self.profile.get("lastname"),
                "username": self.profile.get("username"),
            },
            "token_expires_at": self.expires_at,
            "scopes": list(self.scopes),
        }


class SessionManager:
    """Read, write and refresh athlete sessions in the credential store."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._clock = clock
        # In-process only; concurrent refreshes across processes still race.
        # Entries vanish once no caller holds or awaits the lock.
        self._refresh_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def now(self) -> int:
        return int(self._clock())

    async def get(self, subject_id: int) -> Session | None:
        """Load a session; missing or corrupt records read as absent."""
        data = await get_json(self.store, session_key(subject_id))
        if data is None:
            return None
        try:
            return Session.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed session record for athlete %s", subject_id)
            return None

    async def put(self, session: Session) -> None:
        await put_json(self.store, session_key(session.subject_id), session.to_dict())

    async def delete(self, subject_id: int) -> None:
        await self.store.delete(session_key(subject_id))

    def needs_refresh(self, session: Session) -> bool:
        return session.needs_refresh(self._clock())

    async def refresh(self, session: Session) -> Session:
        """Exchange the refresh token for a new token triple and persist it.

        Raises:
            RefreshFailed: If Strava responds non-2xx, times out, or returns
                an unusable body.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "refresh_token",
                        "refresh_token": session.refresh_token,
                    },
                )
        except httpx.HTTPError as e:
            raise RefreshFailed(f"Token refresh request failed: {e}") from e

        if response.is_error:
            raise RefreshFailed(f"Token refresh failed: {response.status_code}")

        try:
            token_data = TokenResponse(**response.json())
        except (ValueError, ValidationError) as e:
            raise RefreshFailed("Token refresh returned an invalid response") from e

        refreshed = session.with_tokens(token_data)
        await self.put(refreshed)
        logger.info("Token refreshed for athlete %s", session.subject_id)
        return refreshed

    async def ensure_fresh(self, session: Session) -> Session:
        """Refresh ``session`` if it expires within the safety margin."""
        if not self.needs_refresh(session):
            return session

        lock = self._refresh_locks.get(session.subject_id)
        if lock is None:
            lock = self._refresh_locks[session.subject_id] = asyncio.Lock()

        async with lock:
            # Another request may have refreshed while we waited.
            current = await self.get(session.subject_id)
            if current is None:
                raise RefreshFailed(f"Session for athlete {session.subject_id} no longer exists")
            if not self.needs_refresh(current):
                return current
            return await self.refresh(current)
