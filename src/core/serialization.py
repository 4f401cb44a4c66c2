"""Conversion between core models and their JSON-friendly dict shapes.

The dict shapes use the camelCase keys operators already know from the seed
definitions (``keywordMatchMode``, ``actions.addTags`` ...), so the same
helpers serve config seeding, the command interpreter and the SQLite adapter.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from core.models import (
    Author,
    AutoReply,
    ContentType,
    Filter,
    FilterActions,
    FilterStats,
    GroupInfo,
    KeywordMatchMode,
    Location,
    Media,
    Message,
    MessageContent,
    MessageMetadata,
    MessageStatus,
    Priority,
    Sender,
    TimeRange,
)


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_author(raw: Any) -> Author:
    """Accept ``{"phoneNumber": ..., "name": ...}`` or a bare phone string."""

    if isinstance(raw, Mapping):
        phone = raw.get("phoneNumber")
        name = raw.get("name")
        return Author(
            phone_number=str(phone) if phone is not None else None,
            name=str(name) if name is not None else None,
        )
    return Author(phone_number=str(raw))


def _build_time_range(raw: Optional[Mapping[str, Any]]) -> Optional[TimeRange]:
    if not raw:
        return None
    start = raw.get("start") or None
    end = raw.get("end") or None
    days = tuple(int(day) for day in raw.get("days") or [])
    if start is None and end is None and not days:
        return None
    return TimeRange(start=start, end=end, days=days)


def _build_actions(raw: Optional[Mapping[str, Any]]) -> FilterActions:
    raw = raw or {}
    auto_reply = raw.get("autoReply") or {}
    priority = raw.get("setPriority")
    return FilterActions(
        mark_as_important=bool(raw.get("markAsImportant", False)),
        set_priority=Priority(priority) if priority else None,
        add_tags=tuple(dict.fromkeys(str(tag) for tag in raw.get("addTags") or [])),
        auto_reply=AutoReply(
            enabled=bool(auto_reply.get("enabled", False)),
            message=str(auto_reply.get("message") or ""),
        ),
        forward_to=tuple(str(dest) for dest in raw.get("forwardTo") or []),
        archive=bool(raw.get("archive", False)),
    )


def build_filter(raw: Mapping[str, Any]) -> Filter:
    """Normalize a filter definition dict into a Filter.

    Raises ValueError (or KeyError for a missing name) on malformed input so
    callers can reject a definition before it reaches the store.
    """

    name = str(raw["name"]).strip()
    if not name:
        raise ValueError("Filter name must not be empty")
    stats = raw.get("stats") or {}
    return Filter(
        id=raw.get("id"),
        name=name,
        description=str(raw.get("description") or ""),
        authors=tuple(build_author(author) for author in raw.get("authors") or []),
        keywords=tuple(str(keyword) for keyword in raw.get("keywords") or []),
        keyword_match_mode=KeywordMatchMode.parse(raw.get("keywordMatchMode")),
        message_types=tuple(ContentType(kind) for kind in raw.get("messageTypes") or []),
        time_range=_build_time_range(raw.get("timeRange")),
        actions=_build_actions(raw.get("actions")),
        enabled=bool(raw.get("enabled", True)),
        stats=FilterStats(
            matches=int(stats.get("matches", 0)),
            last_match=_parse_datetime(stats.get("lastMatch")),
        ),
    )


def filter_to_dict(filter_: Filter) -> dict[str, Any]:
    actions = filter_.actions
    time_range = filter_.time_range
    return {
        "id": filter_.id,
        "name": filter_.name,
        "description": filter_.description,
        "authors": [
            {"phoneNumber": author.phone_number, "name": author.name} for author in filter_.authors
        ],
        "keywords": list(filter_.keywords),
        "keywordMatchMode": filter_.keyword_match_mode.value,
        "messageTypes": [kind.value for kind in filter_.message_types],
        "timeRange": (
            {"start": time_range.start, "end": time_range.end, "days": list(time_range.days)}
            if time_range
            else None
        ),
        "actions": {
            "markAsImportant": actions.mark_as_important,
            "setPriority": actions.set_priority.value if actions.set_priority else None,
            "addTags": list(actions.add_tags),
            "autoReply": {"enabled": actions.auto_reply.enabled, "message": actions.auto_reply.message},
            "forwardTo": list(actions.forward_to),
            "archive": actions.archive,
        },
        "enabled": filter_.enabled,
        "stats": {
            "matches": filter_.stats.matches,
            "lastMatch": _format_datetime(filter_.stats.last_match),
        },
    }


def message_to_dict(message: Message) -> dict[str, Any]:
    content = message.content
    metadata = message.metadata
    media = content.media
    location = content.location
    return {
        "messageId": message.message_id,
        "from": {
            "phoneNumber": message.sender.phone_number,
            "name": message.sender.name,
            "profileName": message.sender.profile_name,
        },
        "to": {"phoneNumber": message.recipient} if message.recipient else None,
        "content": {
            "type": content.type.value,
            "text": content.text,
            "media": (
                {
                    "url": media.url,
                    "mimeType": media.mime_type,
                    "fileName": media.file_name,
                    "fileSize": media.file_size,
                }
                if media
                else None
            ),
            "location": (
                {
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "name": location.name,
                    "address": location.address,
                }
                if location
                else None
            ),
        },
        "timestamp": message.timestamp.isoformat(),
        "status": message.status.value,
        "metadata": {
            "isImportant": metadata.is_important,
            "priority": metadata.priority.value,
            "tags": list(metadata.tags),
            "notes": metadata.notes,
            "source": metadata.source,
            "groupInfo": (
                {"name": metadata.group.name, "id": metadata.group.id} if metadata.group else None
            ),
        },
    }


def message_from_dict(raw: Mapping[str, Any], version: int = 0) -> Message:
    sender = raw.get("from") or {}
    recipient = raw.get("to") or {}
    content = raw.get("content") or {}
    metadata = raw.get("metadata") or {}
    media = content.get("media")
    location = content.get("location")
    group = metadata.get("groupInfo")
    return Message(
        message_id=str(raw["messageId"]),
        sender=Sender(
            phone_number=str(sender.get("phoneNumber") or ""),
            name=sender.get("name"),
            profile_name=sender.get("profileName"),
        ),
        recipient=recipient.get("phoneNumber"),
        content=MessageContent(
            type=ContentType(content.get("type") or ContentType.TEXT.value),
            text=content.get("text"),
            media=(
                Media(
                    url=media.get("url"),
                    mime_type=media.get("mimeType"),
                    file_name=media.get("fileName"),
                    file_size=media.get("fileSize"),
                )
                if media
                else None
            ),
            location=(
                Location(
                    latitude=location.get("latitude"),
                    longitude=location.get("longitude"),
                    name=location.get("name"),
                    address=location.get("address"),
                )
                if location
                else None
            ),
        ),
        timestamp=_parse_datetime(raw["timestamp"]),
        status=MessageStatus(raw.get("status") or MessageStatus.RECEIVED.value),
        metadata=MessageMetadata(
            is_important=bool(metadata.get("isImportant", False)),
            priority=Priority(metadata.get("priority") or Priority.MEDIUM.value),
            tags=list(metadata.get("tags") or []),
            notes=metadata.get("notes"),
            source=metadata.get("source"),
            group=GroupInfo(name=group["name"], id=group.get("id")) if group else None,
        ),
        version=version,
    )
