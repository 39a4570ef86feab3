"""Notification relay client (Poke inbound webhook)."""

import httpx

from .errors import RelayError

POKE_WEBHOOK_URL = "https://poke.com/api/v1/inbound-sms/webhook"


class NotificationRelay:
    """Forward a plain-text message to the relay using a bearer API key."""

    def __init__(self, api_key: str, timeout: float = 10.0, url: str = POKE_WEBHOOK_URL):
        if not api_key:
            raise ValueError("A relay API key is required.")
        self.api_key = api_key
        self.timeout = timeout
        self.url = url

    async def send(self, message: str) -> None:
        """Deliver ``message``; any non-2xx, timeout or transport error raises RelayError."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"message": message},
                )
        except httpx.HTTPError as e:
            raise RelayError(f"Relay request failed: {e}") from e

        if response.is_error:
            raise RelayError(f"Relay error: {response.status_code} - {response.text.strip()}")
