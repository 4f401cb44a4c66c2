"""Shared forward formatting helpers.

Keeping formatting here prevents drift between channels and keeps forwarded
messages identical regardless of delivery channel. Every function is a pure
function of its inputs.
"""

from __future__ import annotations

from datetime import tzinfo
from typing import Optional

from core.models import Message

NO_TEXT = "[message without text]"
HEADER_DIVIDER = "═" * 35
BODY_DIVIDER = "─" * 30


def format_sender(message: Message) -> str:
    """Return "Name (number)" or just the number when no name is known."""

    sender = message.sender
    if sender.name:
        return f"{sender.name} ({sender.phone_number})"
    return sender.phone_number


def format_timestamp(message: Message, tz: Optional[tzinfo] = None) -> str:
    local = message.timestamp.astimezone(tz) if tz else message.timestamp.astimezone()
    return local.strftime("%d/%m/%Y, %H:%M:%S")


def _format_plain(message: Message) -> str:
    text = message.content.text or NO_TEXT
    return f"Forwarded from {format_sender(message)}\n\n{text}"


def _format_labelled(message: Message, filter_label: str, tz: Optional[tzinfo]) -> str:
    text = message.content.text or NO_TEXT
    sender = message.sender

    lines = [f"🚨 FILTER TRIGGERED: **{filter_label}**", HEADER_DIVIDER]
    group = message.metadata.group
    if group:
        lines.append(f"👥 **Group:** {group.name}")
    if sender.name:
        lines.append(f"👤 **From:** {sender.name}")
        lines.append(f"📱 **Number:** {sender.phone_number}")
    else:
        lines.append(f"📱 **From:** {sender.phone_number}")
    lines.append(f"⏰ **When:** {format_timestamp(message, tz)}")
    lines.extend([BODY_DIVIDER, "", "💬 **Message:**", text])
    return "\n".join(lines)


def build_forward_text(
    message: Message,
    filter_label: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> str:
    """Return the forwarded payload text.

    Without a label the payload is a plain "Forwarded from" header plus the
    original text; filter-triggered forwards get the labelled block.
    """

    if filter_label:
        return _format_labelled(message, filter_label, tz)
    return _format_plain(message)
