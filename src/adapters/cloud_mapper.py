"""Cloud API webhook-to-core message mapping adapter.

Only the payload shape is handled here; signature and challenge checks belong
to whatever HTTP layer receives the webhook.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional

from core.models import ContentType, Location, Media, Message, MessageContent, Sender

SOURCE = "cloud"
_MEDIA_TYPES = {"image", "document", "audio", "video", "sticker"}


def _content_type(raw_type: Optional[str]) -> ContentType:
    # Unknown provider types (reactions, buttons...) are treated as text.
    try:
        return ContentType(raw_type or "text")
    except ValueError:
        return ContentType.TEXT


def _profile_name(value: Mapping[str, Any]) -> Optional[str]:
    contacts = value.get("contacts") or []
    if not contacts:
        return None
    return (contacts[0].get("profile") or {}).get("name")


def build_message(raw: Mapping[str, Any], value: Mapping[str, Any]) -> Message:
    """Map one ``messages[]`` entry (plus its change value) to a Message."""

    kind = _content_type(raw.get("type"))
    media = None
    location = None
    if raw.get("type") in _MEDIA_TYPES:
        media_raw = raw.get(raw["type"]) or {}
        media = Media(
            url=media_raw.get("link"),
            mime_type=media_raw.get("mime_type"),
            file_name=media_raw.get("filename"),
            file_size=media_raw.get("file_size"),
        )
    elif kind == ContentType.LOCATION:
        location_raw = raw.get("location") or {}
        location = Location(
            latitude=location_raw.get("latitude"),
            longitude=location_raw.get("longitude"),
            name=location_raw.get("name"),
            address=location_raw.get("address"),
        )

    text = (raw.get("text") or {}).get("body")
    if text is None and media is not None:
        text = (raw.get(raw["type"]) or {}).get("caption")

    profile_name = _profile_name(value)
    message = Message(
        message_id=str(raw.get("id") or ""),
        sender=Sender(phone_number=str(raw.get("from") or ""), name=profile_name, profile_name=profile_name),
        recipient=raw.get("to") or (value.get("metadata") or {}).get("display_phone_number"),
        content=MessageContent(type=kind, text=text, media=media, location=location),
        timestamp=datetime.fromtimestamp(int(raw.get("timestamp") or 0), tz=timezone.utc),
    )
    message.metadata.source = SOURCE
    return message


def iter_webhook_messages(body: Mapping[str, Any]) -> Iterator[Message]:
    """Yield every inbound message contained in a webhook payload."""

    if body.get("object") != "whatsapp_business_account":
        return
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}
            for raw in value.get("messages") or []:
                yield build_message(raw, value)
