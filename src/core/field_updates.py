"""Typed filter field updates issued by operators from chat.

Each variant carries its own parsed payload and a pure ``apply_to`` that
returns a new Filter. Values are coerced permissively on purpose: list fields
try JSON first and fall back to wrapping the raw string as a one-element list,
because quoting JSON correctly from a phone keyboard is error-prone.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, List, Optional, Tuple

from core.errors import CommandError
from core.models import Author, ContentType, Filter, Priority
from core.serialization import build_author


class FilterField(str, Enum):
    KEYWORDS = "keywords"
    AUTHORS = "authors"
    MESSAGE_TYPES = "messagetypes"
    PRIORITY = "priority"
    IMPORTANT = "important"
    ARCHIVE = "archive"
    ACTIVE = "active"

    @classmethod
    def lookup(cls, raw: str) -> Optional["FilterField"]:
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


def parse_list_value(raw: str) -> List[Any]:
    """JSON array if the value parses as one, else ``[raw]``."""

    try:
        parsed = json.loads(raw)
    except ValueError:
        return [raw]
    if isinstance(parsed, list):
        return parsed
    return [raw]


def parse_bool_value(raw: str) -> bool:
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise CommandError(f"Expected true or false, got '{raw}'")


@dataclass(frozen=True)
class KeywordsUpdate:
    keywords: Tuple[str, ...]
    field = FilterField.KEYWORDS

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, keywords=self.keywords)

    def describe(self) -> str:
        return json.dumps(list(self.keywords), ensure_ascii=False)


@dataclass(frozen=True)
class AuthorsUpdate:
    authors: Tuple[Author, ...]
    field = FilterField.AUTHORS

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, authors=self.authors)

    def describe(self) -> str:
        return ", ".join(author.name or author.phone_number or "?" for author in self.authors)


@dataclass(frozen=True)
class MessageTypesUpdate:
    message_types: Tuple[ContentType, ...]
    field = FilterField.MESSAGE_TYPES

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, message_types=self.message_types)

    def describe(self) -> str:
        return ", ".join(kind.value for kind in self.message_types)


@dataclass(frozen=True)
class PriorityUpdate:
    priority: Priority
    field = FilterField.PRIORITY

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, actions=replace(filter_.actions, set_priority=self.priority))

    def describe(self) -> str:
        return self.priority.value


@dataclass(frozen=True)
class ImportantUpdate:
    value: bool
    field = FilterField.IMPORTANT

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, actions=replace(filter_.actions, mark_as_important=self.value))

    def describe(self) -> str:
        return str(self.value).lower()


@dataclass(frozen=True)
class ArchiveUpdate:
    value: bool
    field = FilterField.ARCHIVE

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, actions=replace(filter_.actions, archive=self.value))

    def describe(self) -> str:
        return str(self.value).lower()


@dataclass(frozen=True)
class ActiveUpdate:
    value: bool
    field = FilterField.ACTIVE

    def apply_to(self, filter_: Filter) -> Filter:
        return replace(filter_, enabled=self.value)

    def describe(self) -> str:
        return str(self.value).lower()


def _content_type(raw: Any) -> ContentType:
    try:
        return ContentType(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(kind.value for kind in ContentType)
        raise CommandError(f"Unknown message type '{raw}' (allowed: {allowed})") from None


def parse_field_update(field: FilterField, raw_value: str):
    """Build the typed update for ``field`` from the operator's raw value."""

    if field == FilterField.KEYWORDS:
        return KeywordsUpdate(tuple(str(item) for item in parse_list_value(raw_value)))
    if field == FilterField.AUTHORS:
        return AuthorsUpdate(tuple(build_author(item) for item in parse_list_value(raw_value)))
    if field == FilterField.MESSAGE_TYPES:
        return MessageTypesUpdate(tuple(_content_type(item) for item in parse_list_value(raw_value)))
    if field == FilterField.PRIORITY:
        try:
            return PriorityUpdate(Priority(raw_value.strip().lower()))
        except ValueError:
            allowed = ", ".join(priority.value for priority in Priority)
            raise CommandError(f"Unknown priority '{raw_value}' (allowed: {allowed})") from None
    if field == FilterField.IMPORTANT:
        return ImportantUpdate(parse_bool_value(raw_value))
    if field == FilterField.ARCHIVE:
        return ArchiveUpdate(parse_bool_value(raw_value))
    if field == FilterField.ACTIVE:
        return ActiveUpdate(parse_bool_value(raw_value))
    raise CommandError(f"Unknown field '{field}'")
