"""Operator command interpreter.

Authorized operators can inspect and edit filters by sending plain chat text,
for example::

    aggiorna filtro Messaggi Urgenti priority high
    update filter Work keywords ["invoice", "deadline"]

The interpreter never raises past handle(); every failure becomes a
CommandResult with success=False.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from core.errors import CommandError, DuplicateKeyError, StoreError
from core.field_updates import FilterField, parse_field_update
from core.models import CommandResult, Filter, Message
from core.phone_numbers import is_allowed, normalize_allow_list
from core.ports import ChannelPort, FilterStorePort
from core.rule_cache import RuleCache

LOGGER = logging.getLogger(__name__)

UNAUTHORIZED = "You are not authorized to run commands."
NOT_RECOGNIZED = "Command not recognized. Send 'help' for the list of commands."
USAGE = "Usage: aggiorna filtro <name> <field> <value>"

HELP_TEXT = "\n".join(
    [
        "Available commands:",
        "- help: show this message",
        "- lista filtri / list filters: show every filter with its state",
        "- aggiorna filtro <name> <field> <value>: edit a filter",
        "",
        "Fields: " + ", ".join(field.value for field in FilterField),
        "List fields accept a JSON array or a single value.",
        "Boolean fields (important, archive, active) accept true or false.",
    ]
)

_HELP_WORDS = {"help", "/help", "aiuto", "?"}
_LIST_PHRASES = ("lista filtri", "list filters", "/filters")
_UPDATE_PHRASES = ("aggiorna filtro", "update filter")
_UPDATE_PREFIX = re.compile(r"(?:aggiorna\s+filtro|update\s+filter)\s+", re.IGNORECASE)


class Intent(str, Enum):
    HELP = "help"
    LIST = "list"
    UPDATE = "update"
    UNKNOWN = "unknown"


def recognize(text: str) -> Intent:
    normalized = (text or "").strip().lower()
    if normalized in _HELP_WORDS:
        return Intent.HELP
    if any(phrase in normalized for phrase in _LIST_PHRASES):
        return Intent.LIST
    if any(phrase in normalized for phrase in _UPDATE_PHRASES):
        return Intent.UPDATE
    return Intent.UNKNOWN


@dataclass(frozen=True)
class UpdateCommand:
    filter_name: str
    field: str
    value: str


def parse_update(text: str) -> UpdateCommand:
    """Split an update command into filter name, field and raw value.

    The field is the last known field token that still leaves a non-empty
    value, so multi-word filter names are taken greedily. The value is the
    rest of the line verbatim, so it may contain spaces or JSON.
    """

    prefix = _UPDATE_PREFIX.search(text or "")
    if not prefix:
        raise CommandError(USAGE)
    rest = text[prefix.end():].strip()
    tokens = list(re.finditer(r"\S+", rest))
    if len(tokens) < 3:
        raise CommandError(USAGE)

    for index in range(len(tokens) - 2, 0, -1):
        token = tokens[index]
        if FilterField.lookup(token.group()) is None:
            continue
        value = rest[token.end():].strip()
        if value:
            name = rest[: tokens[index - 1].end()]
            return UpdateCommand(filter_name=name, field=token.group().lower(), value=value)

    # No known field: report the second-to-last token as the field.
    field_token = tokens[-2]
    return UpdateCommand(
        filter_name=rest[: tokens[-3].end()],
        field=field_token.group().lower(),
        value=rest[field_token.end():].strip(),
    )


def format_filter_list(filters: Iterable[Filter]) -> str:
    filters = list(filters)
    if not filters:
        return "No filters configured."
    lines = [f"Filters ({len(filters)}):"]
    for filter_ in filters:
        state = "on" if filter_.enabled else "off"
        lines.append(f"- {filter_.name} [{state}] matches: {filter_.stats.matches}")
    return "\n".join(lines)


class CommandInterpreter:
    """Authorizes, parses and applies operator commands."""

    def __init__(
        self,
        store: FilterStorePort,
        rule_cache: RuleCache,
        admin_numbers: Iterable[str],
        channels: Optional[Mapping[str, ChannelPort]] = None,
    ) -> None:
        self._store = store
        self._rule_cache = rule_cache
        self._admins = normalize_allow_list(admin_numbers)
        self._channels = dict(channels or {})

    def is_authorized(self, phone_number: str) -> bool:
        return is_allowed(phone_number, self._admins)

    async def handle(self, message: Message) -> CommandResult:
        if not self.is_authorized(message.sender.phone_number):
            LOGGER.warning("Refused command from unauthorized sender %s", message.sender.phone_number)
            return CommandResult(success=False, message=UNAUTHORIZED)

        intent = recognize(message.text)
        if intent == Intent.HELP:
            return CommandResult(success=True, message=HELP_TEXT)
        if intent == Intent.LIST:
            return self._list()
        if intent == Intent.UPDATE:
            result = self._update(message.text)
            if result.success:
                await self._confirm(message, result.message)
            return result
        return CommandResult(success=False, message=NOT_RECOGNIZED)

    def _list(self) -> CommandResult:
        try:
            filters = self._store.find_all()
        except StoreError as exc:
            LOGGER.error("Could not list filters: %s", exc)
            return CommandResult(success=False, message=f"Could not load filters: {exc}")
        return CommandResult(success=True, message=format_filter_list(filters))

    def _update(self, text: str) -> CommandResult:
        try:
            command = parse_update(text)
            field = FilterField.lookup(command.field)
            if field is None:
                return CommandResult(success=False, message=f"Unknown field '{command.field}'")
            update = parse_field_update(field, command.value)
            existing = self._store.find_by_name(command.filter_name)
            if existing is None:
                return CommandResult(success=False, message=f"Filter '{command.filter_name}' not found")
            self._store.save(update.apply_to(existing))
        except CommandError as exc:
            return CommandResult(success=False, message=str(exc))
        except DuplicateKeyError as exc:
            return CommandResult(success=False, message=f"Filter name already in use: {exc}")
        except StoreError as exc:
            LOGGER.error("Filter update failed: %s", exc)
            return CommandResult(success=False, message=f"Could not save filter: {exc}")

        self._rule_cache.refresh()
        LOGGER.info("Filter %s updated: %s = %s", command.filter_name, field.value, update.describe())
        return CommandResult(
            success=True,
            message=f"Filter '{command.filter_name}' updated: {field.value} = {update.describe()}",
        )

    async def _confirm(self, message: Message, text: str) -> None:
        channel = self._channels.get(message.metadata.source or "")
        if channel is None or not channel.is_available():
            return
        try:
            await channel.send(message.sender.phone_number, text)
        except Exception as exc:
            # The update already succeeded; a lost confirmation is only logged.
            LOGGER.warning("Could not deliver command confirmation: %s", exc)
