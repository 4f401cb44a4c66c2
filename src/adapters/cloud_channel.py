"""WhatsApp Cloud API channel adapter.

Sends text messages through the Graph API. The HTTP call is blocking, so it
runs in a worker thread to keep concurrent channels independent.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional

from adapters.forward_formatting import build_forward_text
from core.errors import ChannelError
from core.models import DeliveryResult, Message

LOGGER = logging.getLogger(__name__)

API_BASE = "https://graph.facebook.com/v18.0"
TOKEN_ENDPOINT = "https://graph.facebook.com/oauth/access_token"
TIMEOUT_SECONDS = 15

# Graph API error code/subcode for an expired access token.
_EXPIRED_TOKEN = (190, 463)


class CloudAPIError(ChannelError):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Cloud API error {status}: {body}")
        self.status = status
        self.body = body

    @property
    def error_codes(self) -> tuple[Optional[int], Optional[int]]:
        try:
            error = json.loads(self.body).get("error", {})
        except (ValueError, AttributeError):
            return None, None
        return error.get("code"), error.get("error_subcode")


class CloudChannel:
    """Channel adapter that sends messages via the WhatsApp Cloud API."""

    name = "cloud"

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        refresh_token: Optional[str] = None,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._refresh_token = refresh_token
        self._app_id = app_id
        self._app_secret = app_secret
        self._token_expiry: Optional[datetime] = None
        self._tz = tz

    def _endpoint(self) -> str:
        return f"{API_BASE}/{self._phone_number_id}/messages"

    def is_available(self) -> bool:
        if not self._access_token or not self._phone_number_id:
            return False
        if self._token_expiry and datetime.now(timezone.utc) >= self._token_expiry:
            return bool(self._refresh_token)
        return True

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        request.add_header("Authorization", f"Bearer {self._access_token}")
        try:
            with urllib.request.urlopen(request, timeout=TIMEOUT_SECONDS) as response:
                return json.loads(response.read().decode("utf-8") or "{}")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise CloudAPIError(e.code, body) from e
        except urllib.error.URLError as e:
            raise ChannelError(f"Cloud API unreachable: {e.reason}") from e

    def refresh_access_token(self) -> None:
        """Exchange the long-lived refresh token for a new access token."""

        if not (self._refresh_token and self._app_id and self._app_secret):
            raise ChannelError("Refresh token, app id or app secret not configured")
        query = urllib.parse.urlencode(
            {
                "grant_type": "fb_exchange_token",
                "client_id": self._app_id,
                "client_secret": self._app_secret,
                "fb_exchange_token": self._refresh_token,
            }
        )
        try:
            with urllib.request.urlopen(f"{TOKEN_ENDPOINT}?{query}", timeout=TIMEOUT_SECONDS) as response:
                body = json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as e:
            raise ChannelError(f"Token refresh failed: {e}") from e
        self._access_token = body["access_token"]
        if body.get("expires_in"):
            self._token_expiry = datetime.now(timezone.utc) + timedelta(seconds=int(body["expires_in"]))
        LOGGER.info("Cloud API access token refreshed")

    def _send_blocking(self, destination: str, text: str) -> DeliveryResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": destination,
            "type": "text",
            "text": {"body": text},
        }
        try:
            body = self._post(payload)
        except CloudAPIError as exc:
            if exc.error_codes != _EXPIRED_TOKEN or not self._refresh_token:
                raise
            LOGGER.info("Cloud API token expired, refreshing and retrying")
            self.refresh_access_token()
            body = self._post(payload)
        messages = body.get("messages") or [{}]
        return DeliveryResult(
            channel=self.name,
            destination=destination,
            provider_message_id=messages[0].get("id"),
        )

    async def send(self, destination: str, text: str) -> DeliveryResult:
        return await asyncio.to_thread(self._send_blocking, destination, text)

    async def forward(
        self, message: Message, destination: str, filter_label: Optional[str] = None
    ) -> DeliveryResult:
        return await self.send(destination, build_forward_text(message, filter_label, self._tz))
