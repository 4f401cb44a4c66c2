"""Generic webhook channel adapter.

Posts a JSON document describing the forwarded message to a configured URL.
The destination travels in the payload; the receiving service decides what
to do with it.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from datetime import tzinfo
from typing import Any, Optional

from adapters.forward_formatting import build_forward_text
from core.errors import ChannelError
from core.models import DeliveryResult, Message
from core.serialization import message_to_dict

TIMEOUT_SECONDS = 15


def build_forward_payload(
    message: Message, destination: str, filter_label: Optional[str], tz: Optional[tzinfo] = None
) -> dict[str, Any]:
    original = message_to_dict(message)
    return {
        "type": "forward",
        "destination": destination,
        "filter": filter_label,
        "text": build_forward_text(message, filter_label, tz),
        "originalMessage": {
            "id": original["messageId"],
            "from": original["from"],
            "content": original["content"],
            "timestamp": original["timestamp"],
        },
    }


class WebhookChannel:
    """Channel adapter that POSTs JSON payloads to an external webhook."""

    name = "webhook"

    def __init__(self, url: Optional[str], tz: Optional[tzinfo] = None) -> None:
        self._url = url
        self._tz = tz

    def is_available(self) -> bool:
        return bool(self._url)

    def _post_blocking(self, payload: dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        request = urllib.request.Request(self._url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=TIMEOUT_SECONDS):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise ChannelError(f"Webhook error {e.code}: {body}") from e
        except urllib.error.URLError as e:
            raise ChannelError(f"Webhook unreachable: {e.reason}") from e

    async def send(self, destination: str, text: str) -> DeliveryResult:
        payload = {"type": "message", "destination": destination, "text": text}
        await asyncio.to_thread(self._post_blocking, payload)
        return DeliveryResult(channel=self.name, destination=destination)

    async def forward(
        self, message: Message, destination: str, filter_label: Optional[str] = None
    ) -> DeliveryResult:
        payload = build_forward_payload(message, destination, filter_label, self._tz)
        await asyncio.to_thread(self._post_blocking, payload)
        return DeliveryResult(channel=self.name, destination=destination)
