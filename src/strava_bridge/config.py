"""Bridge configuration loaded from environment variables and .env."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STRAVA_SCOPES = [
    "profile:read_all",
    "activity:read_all",
    "activity:read",
    "profile:write",
]


class BridgeConfig(BaseSettings):
    """Strava application credentials and bridge settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_redirect_uri: str = ""
    strava_webhook_verify_token: str | None = None
    strava_oauth_scopes: str | None = None
    strava_http_timeout: float = 10.0
    poke_api_key: str | None = None
    strava_bridge_base_url: str = "http://localhost:8000"
    strava_bridge_dashboard_url: str | None = None

    @model_validator(mode="after")
    def validate_credentials(self) -> BridgeConfig:
        """Validate that required credentials are configured."""
        if not self.strava_client_id or self.strava_client_id == "your_client_id_here":
            raise ValueError("STRAVA_CLIENT_ID is not configured. Please set it in your .env file.")
        if not self.strava_client_secret or self.strava_client_secret == "your_client_secret_here":
            raise ValueError(
                "STRAVA_CLIENT_SECRET is not configured. Please set it in your .env file."
            )
        if self.strava_http_timeout <= 0:
            raise ValueError("STRAVA_HTTP_TIMEOUT must be a positive number of seconds.")
        return self

    @property
    def base_url(self) -> str:
        return self.strava_bridge_base_url.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        """OAuth callback registered with Strava; defaults to {base_url}/callback."""
        return self.strava_redirect_uri or f"{self.base_url}/callback"

    @property
    def dashboard_url(self) -> str:
        return self.strava_bridge_dashboard_url or f"{self.base_url}/dashboard"

    @property
    def scopes(self) -> list[str]:
        """Determine the scopes to request from Strava."""
        if self.strava_oauth_scopes:
            scopes = [
                scope.strip() for scope in self.strava_oauth_scopes.split(",") if scope.strip()
            ]
            return scopes or DEFAULT_STRAVA_SCOPES
        return DEFAULT_STRAVA_SCOPES
