from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from core.errors import ChannelError, ConflictingWriteError, DuplicateKeyError, StoreError
from core.models import (
    ContentType,
    DeliveryResult,
    Filter,
    Message,
    MessageContent,
    Sender,
)


class FakeFilterStore:
    def __init__(self, filters: Optional[list[Filter]] = None) -> None:
        self.filters: list[Filter] = []
        self.updates: list[tuple[int, dict[str, Any]]] = []
        self.fail_reads = False
        self.fail_updates = False
        for filter_ in filters or []:
            self.save(filter_)

    def find_enabled(self) -> list[Filter]:
        if self.fail_reads:
            raise StoreError("store offline")
        return [f for f in self.filters if f.enabled]

    def find_all(self) -> list[Filter]:
        if self.fail_reads:
            raise StoreError("store offline")
        return list(self.filters)

    def find_by_name(self, name: str) -> Optional[Filter]:
        for filter_ in self.filters:
            if filter_.name == name:
                return filter_
        return None

    def save(self, filter_: Filter) -> Filter:
        for existing in self.filters:
            if existing.name == filter_.name and existing.id != filter_.id:
                raise DuplicateKeyError(filter_.name)
        if filter_.id is None:
            filter_ = replace(filter_, id=len(self.filters) + 1)
            self.filters.append(filter_)
            return filter_
        self.filters = [filter_ if f.id == filter_.id else f for f in self.filters]
        return filter_

    def update_fields(self, filter_id: int, fields: Mapping[str, Any]) -> None:
        if self.fail_updates:
            raise StoreError("stats write failed")
        self.updates.append((filter_id, dict(fields)))
        self.filters = [replace(f, **fields) if f.id == filter_id else f for f in self.filters]


class FakeMessageStore:
    def __init__(self) -> None:
        self.messages: dict[str, Message] = {}
        self.saves = 0
        self.save_error: Optional[Exception] = None

    def create(self, message: Message) -> None:
        if message.message_id in self.messages:
            raise DuplicateKeyError(message.message_id)
        self.messages[message.message_id] = message

    def save(self, message: Message) -> None:
        self.saves += 1
        if self.save_error is not None:
            raise self.save_error
        self.messages[message.message_id] = message

    def get(self, message_id: str) -> Optional[Message]:
        return self.messages.get(message_id)


class FakeChannel:
    def __init__(self, name: str, available: bool = True, failing: Optional[set[str]] = None) -> None:
        self.name = name
        self.available = available
        self.failing = failing or set()
        self.sent: list[tuple[str, str]] = []
        self.forwarded: list[tuple[str, str, Optional[str]]] = []

    def is_available(self) -> bool:
        return self.available

    async def send(self, destination: str, text: str) -> DeliveryResult:
        if destination in self.failing:
            raise ChannelError(f"cannot reach {destination}")
        self.sent.append((destination, text))
        return DeliveryResult(channel=self.name, destination=destination)

    async def forward(self, message: Message, destination: str, filter_label: Optional[str] = None) -> DeliveryResult:
        if destination in self.failing:
            raise ChannelError(f"cannot reach {destination}")
        self.forwarded.append((message.message_id, destination, filter_label))
        return DeliveryResult(channel=self.name, destination=destination)


def make_message(
    *,
    message_id: str = "wamid.1",
    text: Optional[str] = "hello world",
    kind: ContentType = ContentType.TEXT,
    phone: str = "+393470000001",
    name: Optional[str] = "Mario",
    timestamp: datetime = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
    source: str = "cloud",
) -> Message:
    message = Message(
        message_id=message_id,
        sender=Sender(phone_number=phone, name=name, profile_name=name),
        content=MessageContent(type=kind, text=text),
        timestamp=timestamp,
    )
    message.metadata.source = source
    return message
