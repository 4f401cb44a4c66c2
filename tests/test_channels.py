from __future__ import annotations

import asyncio
import json
from datetime import timezone

import pytest

from adapters.cloud_channel import CloudAPIError, CloudChannel
from adapters.session_channel import SessionChannel, resolve_destination
from adapters.webhook_channel import WebhookChannel, build_forward_payload
from core.errors import ChannelError

from fakes import make_message

EXPIRED = json.dumps({"error": {"code": 190, "error_subcode": 463, "message": "expired"}})


def test_resolve_destination() -> None:
    assert resolve_destination("id:42") == 42
    assert resolve_destination("39 347 000 0001") == "+393470000001"
    with pytest.raises(ChannelError):
        resolve_destination("id:abc")
    with pytest.raises(ChannelError):
        resolve_destination("12")


class DummyClient:
    def __init__(self, connected: bool = True, fail: bool = False) -> None:
        self.connected = connected
        self.fail = fail
        self.sent: list = []

    def is_connected(self) -> bool:
        return self.connected

    async def send_message(self, entity, text):
        if self.fail:
            raise RuntimeError("flood wait")
        self.sent.append((entity, text))
        return type("Sent", (), {"id": 99})()


def test_session_channel_needs_authorization_and_connection() -> None:
    channel = SessionChannel(DummyClient())
    assert not channel.is_available()
    channel.mark_authorized()
    assert channel.is_available()
    assert not SessionChannel(DummyClient(connected=False)).is_available()


def test_session_channel_forward_and_failure() -> None:
    client = DummyClient()
    channel = SessionChannel(client, tz=timezone.utc)

    result = asyncio.run(channel.forward(make_message(text="hi"), "id:7"))

    assert result.provider_message_id == "99"
    assert client.sent == [(7, "Forwarded from Mario (+393470000001)\n\nhi")]

    with pytest.raises(ChannelError):
        asyncio.run(SessionChannel(DummyClient(fail=True)).send("+393470000001", "x"))


def test_webhook_payload_carries_destination_and_original() -> None:
    payload = build_forward_payload(make_message(), "+391111111", "Urgent", timezone.utc)

    assert payload["type"] == "forward"
    assert payload["destination"] == "+391111111"
    assert payload["filter"] == "Urgent"
    assert payload["text"].startswith("🚨 FILTER TRIGGERED: **Urgent**")
    assert payload["originalMessage"]["id"] == "wamid.1"


def test_webhook_channel_posts_payload(monkeypatch) -> None:
    channel = WebhookChannel("https://hooks.example.test/in")
    posted: list = []
    monkeypatch.setattr(channel, "_post_blocking", posted.append)

    asyncio.run(channel.send("+391111111", "hello"))

    assert posted == [{"type": "message", "destination": "+391111111", "text": "hello"}]
    assert not WebhookChannel(None).is_available()


def test_cloud_error_codes() -> None:
    assert CloudAPIError(401, EXPIRED).error_codes == (190, 463)
    assert CloudAPIError(500, "not json").error_codes == (None, None)


def test_cloud_channel_refreshes_expired_token_once(monkeypatch) -> None:
    channel = CloudChannel("old", "123", refresh_token="refresh", app_id="app", app_secret="secret")
    calls: list[str] = []

    def fake_post(payload):
        calls.append(channel._access_token)
        if channel._access_token == "old":
            raise CloudAPIError(401, EXPIRED)
        return {"messages": [{"id": "wamid.OUT"}]}

    def fake_refresh():
        channel._access_token = "new"

    monkeypatch.setattr(channel, "_post", fake_post)
    monkeypatch.setattr(channel, "refresh_access_token", fake_refresh)

    result = asyncio.run(channel.send("393470000001", "hi"))

    assert calls == ["old", "new"]
    assert result.provider_message_id == "wamid.OUT"


def test_cloud_channel_other_errors_propagate(monkeypatch) -> None:
    channel = CloudChannel("token", "123", refresh_token="refresh")

    def fake_post(payload):
        raise CloudAPIError(400, json.dumps({"error": {"code": 131030}}))

    monkeypatch.setattr(channel, "_post", fake_post)

    with pytest.raises(CloudAPIError):
        asyncio.run(channel.send("393470000001", "hi"))
    assert not CloudChannel(None, "123").is_available()
