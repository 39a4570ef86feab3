"""Pydantic models for Strava OAuth, activity and webhook payloads."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

Sex = Literal["M", "F"]
MeasurementPreference = Literal["feet", "meters"]
WebhookObjectType = Literal["activity", "athlete"]
WebhookAspectType = Literal["create", "update", "delete"]


class Athlete(BaseModel):
    """Athlete profile as embedded in Strava token responses."""

    id: int
    resource_state: int | None = None
    username: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    sex: Sex | None = None
    premium: bool | None = None
    summit: bool | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    profile_medium: str | None = None
    profile: str | None = None
    weight: float | None = None
    measurement_preference: MeasurementPreference | None = None


class TokenResponse(BaseModel):
    """OAuth token response."""

    token_type: str | None = None
    expires_at: int
    expires_in: int | None = None
    refresh_token: str
    access_token: str
    athlete: Athlete | None = None


class DetailedActivity(BaseModel):
    """The subset of a detailed activity used for webhook notifications."""

    id: int
    name: str | None = None
    type: str | None = None
    sport_type: str | None = None
    distance: float | None = None
    moving_time: int | None = None
    elapsed_time: int | None = None
    total_elevation_gain: float | None = None
    start_date: datetime | None = None
    start_date_local: datetime | None = None
    average_speed: float | None = None
    max_speed: float | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    average_watts: float | None = None
    kilojoules: float | None = None
    average_cadence: float | None = None
    elev_high: float | None = None
    elev_low: float | None = None
    pr_count: int | None = None
    achievement_count: int | None = None


class WebhookEvent(BaseModel):
    """Change event pushed by the Strava webhook subscription."""

    object_type: WebhookObjectType
    object_id: int | None = None
    aspect_type: WebhookAspectType
    owner_id: int
    subscription_id: int | None = None
    event_time: int | None = None
    updates: dict[str, Any] | None = None

    @property
    def is_deauthorization(self) -> bool:
        """Athlete revoked access to the application."""
        if self.object_type != "athlete" or self.aspect_type != "update":
            return False
        authorized = (self.updates or {}).get("authorized")
        return authorized in ("false", False)
