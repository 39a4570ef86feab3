"""Typed failures raised by the bridge's lower layers."""


class BridgeError(Exception):
    """Base class for bridge failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StravaAPIError(BridgeError):
    """A Strava API call returned non-2xx, timed out, or failed in transport."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class RelayError(BridgeError):
    """The notification relay rejected or failed to receive a message."""


class RefreshFailed(BridgeError):
    """Strava refused to refresh a session's access token."""


class InvalidState(BridgeError):
    """OAuth callback with a missing, unknown, expired or reused state nonce."""


class ExchangeFailed(BridgeError):
    """Strava refused to exchange the authorization code for tokens."""


class AuthorizationDenied(BridgeError):
    """The athlete declined the authorization request on Strava."""


class InvalidToolArguments(BridgeError):
    """A tool was called without a required argument or with one of the wrong type."""
