"""Strava webhook subscription handling.

Verification handshakes are answered inline. Event deliveries are always
acknowledged with HTTP 200 straight away; the real work runs as a Starlette
background task once the response has been sent, and its failures are only
ever logged.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime

from pydantic import ValidationError
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse

from .client import StravaClient
from .config import BridgeConfig
from .formatters import format_activity_message
from .models import DetailedActivity, WebhookEvent
from .notify import NotificationRelay
from .session import SessionManager
from .store import CredentialStore, put_json

logger = logging.getLogger(__name__)

ACTIVITY_SUMMARY_TTL_SECONDS = 30 * 24 * 60 * 60


def activity_summary_key(owner_id: int, activity_id: int) -> str:
    return f"activity_webhook:{owner_id}:{activity_id}"


class StravaWebhookHandler:
    """Handle webhook verification and event processing for Strava activities."""

    def __init__(
        self,
        config: BridgeConfig,
        store: CredentialStore,
        sessions: SessionManager,
        relay: NotificationRelay | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.sessions = sessions
        self.relay = relay

    def is_valid_subscription(self, mode: str | None, verify_token: str | None) -> bool:
        expected = self.config.strava_webhook_verify_token
        if not expected or mode != "subscribe" or verify_token is None:
            return False
        return secrets.compare_digest(verify_token.encode("utf-8"), expected.encode("utf-8"))

    async def handle_verification(self, request: Request) -> JSONResponse:
        """Answer Strava's callback validation (GET).

        The ``hub.challenge`` value is echoed back unchanged.
        """
        query = request.query_params
        if self.is_valid_subscription(query.get("hub.mode"), query.get("hub.verify_token")):
            logger.info("Webhook subscription verified")
            return JSONResponse({"hub.challenge": query.get("hub.challenge", "")})

        logger.warning("Webhook verification failed: invalid mode or token")
        return JSONResponse({"error": "Forbidden"}, status_code=403)

    async def handle_event(self, request: Request) -> JSONResponse:
        """Acknowledge an event delivery (POST) and defer processing."""
        body = await request.body()
        try:
            event = WebhookEvent.model_validate_json(body)
        except ValidationError as e:
            # Still 200 so Strava does not retry a payload we can never parse.
            logger.error("Unparseable webhook event (%d errors): %r", e.error_count(), body[:500])
            return JSONResponse({"success": False, "error": "Invalid webhook event"})

        logger.info(
            "Webhook event received: %s %s %s (owner %s)",
            event.object_type,
            event.aspect_type,
            event.object_id,
            event.owner_id,
        )
        return JSONResponse(
            {"success": True},
            background=BackgroundTask(self.process_event, event),
        )

    async def process_event(self, event: WebhookEvent) -> None:
        """Process one event; nothing raised here can reach Strava."""
        try:
            if event.object_type == "activity":
                await self.handle_activity_event(event)
            elif event.object_type == "athlete":
                await self.handle_athlete_event(event)
        except Exception:
            logger.exception("Failed to process webhook event: %s", event.model_dump_json())

    async def handle_activity_event(self, event: WebhookEvent) -> None:
        if event.aspect_type == "create":
            if event.object_id is None:
                logger.warning("Activity create event for athlete %s has no object_id", event.owner_id)
                return
            await self.process_new_activity(event.object_id, event.owner_id)
        elif event.aspect_type == "update":
            logger.info("Activity %s updated: %s", event.object_id, event.updates)
        else:
            logger.info("Activity %s deleted", event.object_id)

    async def handle_athlete_event(self, event: WebhookEvent) -> None:
        if event.is_deauthorization:
            logger.info("Athlete %s deauthorized the app - removing session", event.owner_id)
            await self.sessions.delete(event.owner_id)
        else:
            logger.info("Athlete %s event ignored: %s", event.owner_id, event.aspect_type)

    async def process_new_activity(self, activity_id: int, owner_id: int) -> None:
        """Fetch a new activity, notify the athlete and keep a short-lived summary."""
        session = await self.sessions.get(owner_id)
        if session is None:
            logger.error("No session found for athlete %s; skipping activity %s", owner_id, activity_id)
            return

        session = await self.sessions.ensure_fresh(session)
        async with StravaClient(
            session.access_token, timeout=self.config.strava_http_timeout
        ) as client:
            activity = await client.get_activity(activity_id)

        message = format_activity_message(activity)
        if self.relay is not None:
            await self.relay.send(message)
            logger.info("Sent activity %s notification to relay", activity_id)
        else:
            logger.info("Relay not configured, skipping notification:\n%s", message)

        await self.store_activity_summary(owner_id, activity)

    async def store_activity_summary(self, owner_id: int, activity: DetailedActivity) -> None:
        summary = {
            "id": activity.id,
            "name": activity.name,
            "type": activity.sport_type or activity.type,
            "distance": activity.distance,
            "moving_time": activity.moving_time,
            "elevation_gain": activity.total_elevation_gain,
            "start_date": (
                activity.start_date_local.isoformat() if activity.start_date_local else None
            ),
            "received_at": datetime.now(UTC).isoformat(),
        }
        await put_json(
            self.store,
            activity_summary_key(owner_id, activity.id),
            summary,
            ttl=ACTIVITY_SUMMARY_TTL_SECONDS,
        )
