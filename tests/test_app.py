from __future__ import annotations

import asyncio

from app import route_message, seed_default_filters
from core.config import ChannelConfig, EngineConfig
from core.dispatcher import ForwardingRoute
from core.engine import build_engine
from core.models import Filter, GroupInfo, MessageStatus

from fakes import FakeChannel, FakeFilterStore, FakeMessageStore, make_message

DEFAULTS = [
    {
        "name": "Messaggi Urgenti",
        "keywords": ["urgente", "emergenza"],
        "actions": {"markAsImportant": True, "setPriority": "urgent", "addTags": ["urgente"]},
    },
    {"name": "Broken", "keywords": ["x"], "keywordMatchMode": "SOMETIMES"},
]


def test_seed_creates_only_missing_valid_filters() -> None:
    store = FakeFilterStore([Filter(name="Existing")])

    created = seed_default_filters(store, DEFAULTS + [{"name": "Existing"}])

    assert created == ["Messaggi Urgenti"]
    assert seed_default_filters(store, DEFAULTS) == []
    assert [f.name for f in store.find_all()] == ["Existing", "Messaggi Urgenti"]


def _engine(filters):
    cloud = FakeChannel("cloud")
    routes = [ForwardingRoute(cloud, ChannelConfig("cloud", False, None))]
    messages = FakeMessageStore()
    config = EngineConfig(admin_numbers=("+393470000001",))
    return build_engine(FakeFilterStore(filters), messages, routes, config), cloud, messages


def test_direct_commands_are_answered_not_processed() -> None:
    engine, _, messages = _engine([Filter(name="all")])
    replies: list[str] = []

    async def reply(text: str) -> None:
        replies.append(text)

    asyncio.run(route_message(engine, make_message(text="lista filtri"), reply))

    assert replies and replies[0].startswith("Filters (1)")
    assert messages.messages == {}


def test_successful_update_is_confirmed_once() -> None:
    engine, cloud, _ = _engine([Filter(name="all")])
    replies: list[str] = []

    async def reply(text: str) -> None:
        replies.append(text)

    asyncio.run(route_message(engine, make_message(text="aggiorna filtro all priority low"), reply))

    assert replies == []
    assert len(cloud.sent) == 1


def test_group_messages_always_go_through_matching() -> None:
    engine, _, messages = _engine([Filter(name="all")])
    message = make_message(text="help")
    message.metadata.group = GroupInfo(name="Team")

    async def reply(text: str) -> None:
        raise AssertionError("group messages are never answered")

    asyncio.run(route_message(engine, message, reply))

    assert messages.get("wamid.1").status == MessageStatus.FILTERED


def test_command_phrases_from_other_senders_are_matched_not_refused() -> None:
    engine, _, messages = _engine([Filter(name="all")])
    replies: list[str] = []

    async def reply(text: str) -> None:
        replies.append(text)

    message = make_message(text="Hi, could you update filter settings on my order?", phone="+15551234")
    asyncio.run(route_message(engine, message, reply))
    asyncio.run(route_message(engine, make_message(message_id="wamid.2", text="help", phone="+15551234"), reply))

    assert replies == []
    assert messages.get("wamid.1").status == MessageStatus.FILTERED
    assert messages.get("wamid.2").status == MessageStatus.FILTERED
