"""Local-session channel adapter.

Sends messages through the logged-in Telethon user session.
"""

from __future__ import annotations

from datetime import tzinfo
from typing import Optional

from adapters.forward_formatting import build_forward_text
from core.errors import ChannelError
from core.models import DeliveryResult, Message
from core.phone_numbers import format_phone_number


USER_ID_PREFIX = "id:"


def resolve_destination(destination: str):
    """Map a destination to something Telethon can send to.

    Senders without a visible phone number are addressed as "id:<user id>"
    (see session_mapper); everything else must be a dialable phone number.
    """

    if destination.startswith(USER_ID_PREFIX):
        user_id = destination[len(USER_ID_PREFIX):]
        if not user_id.isdigit():
            raise ChannelError(f"Invalid user id destination: {destination}")
        return int(user_id)
    try:
        return format_phone_number(destination)
    except ValueError as exc:
        raise ChannelError(str(exc)) from exc


class SessionChannel:
    """Channel adapter that sends messages from the user's own session."""

    name = "session"

    def __init__(self, client, tz: Optional[tzinfo] = None) -> None:
        self._client = client
        self._authorized = False
        self._tz = tz

    def mark_authorized(self, authorized: bool = True) -> None:
        """Record the outcome of the (async) authorization check at startup."""

        self._authorized = authorized

    def is_available(self) -> bool:
        return self._authorized and self._client.is_connected()

    async def send(self, destination: str, text: str) -> DeliveryResult:
        entity = resolve_destination(destination)
        try:
            sent = await self._client.send_message(entity, text)
        except Exception as exc:
            raise ChannelError(f"Session send to {entity} failed: {exc}") from exc
        return DeliveryResult(
            channel=self.name,
            destination=destination,
            provider_message_id=str(getattr(sent, "id", "")) or None,
        )

    async def forward(
        self, message: Message, destination: str, filter_label: Optional[str] = None
    ) -> DeliveryResult:
        return await self.send(destination, build_forward_text(message, filter_label, self._tz))
