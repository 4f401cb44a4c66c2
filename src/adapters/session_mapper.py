"""Telethon-to-core message mapping adapter.

This keeps Telethon-specific details out of the core engine.
"""

from __future__ import annotations

from typing import Iterable, Optional

from telethon.tl.custom import Message as TelethonMessage

from adapters.session_channel import USER_ID_PREFIX
from core.models import ContentType, GroupInfo, Location, Media, Message, MessageContent, Sender

SOURCE = "session"


class GroupSelector:
    """Decide which group chats the session listens to."""

    def __init__(self, listen_all: bool, group_names: Iterable[str]) -> None:
        self._listen_all = listen_all
        self._names = {name.strip() for name in group_names if name.strip()}

    def accepts(self, group_name: Optional[str]) -> bool:
        if self._listen_all:
            return True
        return bool(group_name) and group_name in self._names


def content_type_of(message: TelethonMessage) -> ContentType:
    # Order matters: stickers, voice notes and videos are also documents.
    if getattr(message, "sticker", None):
        return ContentType.STICKER
    if getattr(message, "photo", None):
        return ContentType.IMAGE
    if getattr(message, "video", None) or getattr(message, "gif", None):
        return ContentType.VIDEO
    if getattr(message, "voice", None) or getattr(message, "audio", None):
        return ContentType.AUDIO
    if getattr(message, "geo", None):
        return ContentType.LOCATION
    if getattr(message, "contact", None):
        return ContentType.CONTACT
    if getattr(message, "document", None):
        return ContentType.DOCUMENT
    return ContentType.TEXT


def _media_of(message: TelethonMessage) -> Optional[Media]:
    file = getattr(message, "file", None)
    if file is None:
        return None
    return Media(
        mime_type=getattr(file, "mime_type", None),
        file_name=getattr(file, "name", None),
        file_size=getattr(file, "size", None),
    )


def _location_of(message: TelethonMessage) -> Optional[Location]:
    geo = getattr(message, "geo", None)
    if geo is None:
        return None
    return Location(latitude=getattr(geo, "lat", None), longitude=getattr(geo, "long", None))


def sender_from_entity(entity) -> Sender:
    """Build a Sender; users with a hidden phone are addressed by user id."""

    phone = getattr(entity, "phone", None)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    name = " ".join(part for part in [first, last] if part) or getattr(entity, "title", None)
    username = getattr(entity, "username", None)
    if phone:
        phone_number = f"+{phone}" if not str(phone).startswith("+") else str(phone)
    else:
        phone_number = f"{USER_ID_PREFIX}{getattr(entity, 'id', '')}"
    return Sender(phone_number=phone_number, name=name or None, profile_name=username or name or None)


async def build_message(message: TelethonMessage) -> Message:
    """Build a core Message from a Telethon Message."""

    sender = sender_from_entity(await message.get_sender())

    group = None
    if getattr(message, "is_group", False):
        chat = await message.get_chat()
        group = GroupInfo(name=getattr(chat, "title", None) or "unknown", id=str(message.chat_id))

    kind = content_type_of(message)
    content = MessageContent(
        type=kind,
        text=message.raw_text or None,
        media=_media_of(message) if kind not in (ContentType.TEXT, ContentType.LOCATION) else None,
        location=_location_of(message) if kind == ContentType.LOCATION else None,
    )

    normalized = Message(
        # Telegram message ids are only unique per chat.
        message_id=f"{message.chat_id}:{message.id}",
        sender=sender,
        content=content,
        timestamp=message.date,
    )
    normalized.metadata.source = SOURCE
    normalized.metadata.group = group
    return normalized
