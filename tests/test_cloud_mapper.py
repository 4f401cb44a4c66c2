from __future__ import annotations

from datetime import datetime, timezone

from adapters.cloud_mapper import iter_webhook_messages
from core.models import ContentType


def _webhook(*messages, field: str = "messages") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "field": field,
                        "value": {
                            "metadata": {"display_phone_number": "15550001111"},
                            "contacts": [{"profile": {"name": "Anna"}}],
                            "messages": list(messages),
                        },
                    }
                ]
            }
        ],
    }


def test_text_message_is_mapped() -> None:
    raw = {"id": "wamid.A", "from": "393470000001", "timestamp": "1704103200", "type": "text", "text": {"body": "hi"}}

    [message] = list(iter_webhook_messages(_webhook(raw)))

    assert message.message_id == "wamid.A"
    assert message.sender.phone_number == "393470000001"
    assert message.sender.name == "Anna"
    assert message.recipient == "15550001111"
    assert message.content.type == ContentType.TEXT
    assert message.text == "hi"
    assert message.timestamp == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert message.metadata.source == "cloud"


def test_image_caption_becomes_text() -> None:
    raw = {
        "id": "wamid.B",
        "from": "393470000001",
        "timestamp": "1704103200",
        "type": "image",
        "image": {"link": "https://example.test/a.jpg", "mime_type": "image/jpeg", "caption": "receipt"},
    }

    [message] = list(iter_webhook_messages(_webhook(raw)))

    assert message.content.type == ContentType.IMAGE
    assert message.content.media.url == "https://example.test/a.jpg"
    assert message.text == "receipt"


def test_location_and_unknown_types() -> None:
    location = {
        "id": "wamid.C",
        "from": "1",
        "timestamp": "0",
        "type": "location",
        "location": {"latitude": 45.0, "longitude": 9.0, "name": "Office"},
    }
    reaction = {"id": "wamid.D", "from": "1", "timestamp": "0", "type": "reaction"}

    first, second = iter_webhook_messages(_webhook(location, reaction))

    assert first.content.location.name == "Office"
    assert second.content.type == ContentType.TEXT
    assert second.text == ""


def test_non_message_payloads_yield_nothing() -> None:
    assert list(iter_webhook_messages({"object": "page"})) == []
    assert list(iter_webhook_messages(_webhook({"id": "x"}, field="statuses"))) == []
