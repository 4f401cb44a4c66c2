"""Validation of normalized messages before they are persisted."""

from __future__ import annotations

from typing import List

from core.errors import MessageValidationError
from core.models import ContentType, Message


def find_problems(message: Message) -> List[str]:
    """Return human-readable problems; an empty list means the message is valid."""

    problems: List[str] = []
    if not message.message_id or not str(message.message_id).strip():
        problems.append("messageId is required")
    if message.sender is None or not str(message.sender.phone_number or "").strip():
        problems.append("from.phoneNumber is required")
    if message.content is None:
        problems.append("content is required")
    elif not isinstance(message.content.type, ContentType):
        problems.append(f"content.type is not supported: {message.content.type!r}")
    if message.timestamp is None:
        problems.append("timestamp is required")
    elif message.timestamp.tzinfo is None:
        # Naive datetimes make time-window matching ambiguous.
        problems.append("timestamp must be timezone-aware")
    return problems


def validate_message(message: Message) -> None:
    problems = find_problems(message)
    if problems:
        raise MessageValidationError(problems)
