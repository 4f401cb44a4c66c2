from __future__ import annotations

from datetime import timezone

from adapters.forward_formatting import (
    BODY_DIVIDER,
    HEADER_DIVIDER,
    NO_TEXT,
    build_forward_text,
    format_sender,
)
from core.models import ContentType, GroupInfo

from fakes import make_message


def test_plain_forward_has_sender_header_and_text() -> None:
    text = build_forward_text(make_message(text="ciao"))
    assert text == "Forwarded from Mario (+393470000001)\n\nciao"


def test_sender_without_name_is_just_the_number() -> None:
    assert format_sender(make_message(name=None)) == "+393470000001"


def test_labelled_forward_block() -> None:
    text = build_forward_text(make_message(text="call me"), "Urgent", timezone.utc)
    lines = text.split("\n")

    assert lines[0] == "🚨 FILTER TRIGGERED: **Urgent**"
    assert lines[1] == HEADER_DIVIDER
    assert "👤 **From:** Mario" in lines
    assert "📱 **Number:** +393470000001" in lines
    assert "⏰ **When:** 01/01/2024, 10:00:00" in lines
    assert BODY_DIVIDER in lines
    assert lines[-2:] == ["💬 **Message:**", "call me"]


def test_labelled_forward_includes_group_and_placeholder() -> None:
    message = make_message(text=None, kind=ContentType.IMAGE, name=None)
    message.metadata.group = GroupInfo(name="Family")

    text = build_forward_text(message, "Media", timezone.utc)

    assert "👥 **Group:** Family" in text
    assert "📱 **From:** +393470000001" in text
    assert text.endswith(NO_TEXT)


def test_formatting_is_deterministic() -> None:
    message = make_message()
    assert build_forward_text(message, "f", timezone.utc) == build_forward_text(message, "f", timezone.utc)
