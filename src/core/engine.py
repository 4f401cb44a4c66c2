"""Core message processing engine.

This module is transport-agnostic. It only relies on ports for storage and
channels, so both inbound transports call the same two entry points:

1) Validate the normalized message (reject before persistence)
2) Persist it once per message_id (duplicates are rejected)
3) Refresh the rule cache so recent filter edits are honored
4) Match every enabled filter, in order
5) Dispatch actions for matched filters, or mark the message processed
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.commands import CommandInterpreter
from core.config import EngineConfig
from core.dispatcher import Dispatcher, ForwardingRoute
from core.errors import ConflictingWriteError, DuplicateKeyError, MessageValidationError, StoreError
from core.models import CommandResult, Message, MessageStatus, ProcessReport
from core.ports import ChannelPort, FilterStorePort, MessageStorePort
from core.rule_cache import RuleCache
from core.rules_engine import Matcher
from core.validation import validate_message

LOGGER = logging.getLogger(__name__)


class Engine:
    """Orchestrates cache refresh, matching and dispatch for one message."""

    def __init__(
        self,
        rule_cache: RuleCache,
        matcher: Matcher,
        dispatcher: Dispatcher,
        message_store: MessageStorePort,
        interpreter: CommandInterpreter,
    ) -> None:
        self._rule_cache = rule_cache
        self._matcher = matcher
        self._dispatcher = dispatcher
        self._messages = message_store
        self._interpreter = interpreter

    def channel(self, name: str) -> Optional[ChannelPort]:
        """Return the configured channel with this name, if any."""

        return self._dispatcher.channel_for(name)

    def is_admin(self, message: Message) -> bool:
        """True when the sender may run operator commands."""

        return self._interpreter.is_authorized(message.sender.phone_number)

    async def process(self, message: Message) -> ProcessReport:
        """Run one inbound message through matching and dispatch."""

        message_id = getattr(message, "message_id", None) or "<missing>"
        try:
            validate_message(message)
        except MessageValidationError as exc:
            LOGGER.warning("Rejected invalid message %s: %s", message_id, exc)
            return ProcessReport(message_id=message_id, accepted=False, reason=f"invalid: {exc}")

        try:
            self._messages.create(message)
        except DuplicateKeyError:
            LOGGER.info("Duplicate message %s ignored", message_id)
            return ProcessReport(message_id=message_id, accepted=False, reason="duplicate")
        except StoreError as exc:
            LOGGER.error("Could not persist message %s: %s", message_id, exc)
            return ProcessReport(message_id=message_id, accepted=False, reason=f"store error: {exc}")

        filters = self._rule_cache.refresh()
        matched = self._matcher.match_all(message, filters)

        if not matched:
            message.advance_to(MessageStatus.PROCESSED)
            self._save_quietly(message)
            LOGGER.debug("Message %s matched no filter", message_id)
            return ProcessReport(message_id=message_id, accepted=True, status=message.status)

        LOGGER.info("Message %s matched %s filter(s)", message_id, len(matched))
        report = await self._dispatcher.dispatch(message, matched)
        return ProcessReport(
            message_id=message_id,
            accepted=True,
            status=message.status,
            matched_filters=tuple(f.name for f in matched),
            dispatch=report,
        )

    async def handle_admin_command(self, message: Message) -> CommandResult:
        """Run an operator command; the caller may relay the result text."""

        try:
            return await self._interpreter.handle(message)
        except Exception:
            LOGGER.exception("Unexpected error while handling a command")
            return CommandResult(success=False, message="Internal error while running the command.")

    def _save_quietly(self, message: Message) -> None:
        try:
            self._messages.save(message)
        except ConflictingWriteError:
            LOGGER.debug("Concurrent save of %s ignored", message.message_id)
        except StoreError as exc:
            LOGGER.error("Could not mark %s as %s: %s", message.message_id, message.status.value, exc)


def build_engine(
    filter_store: FilterStorePort,
    message_store: MessageStorePort,
    routes: Sequence[ForwardingRoute],
    config: EngineConfig,
) -> Engine:
    """Wire an Engine with one explicitly owned rule cache."""

    rule_cache = RuleCache(filter_store)
    channels = {route.channel.name: route.channel for route in routes}
    return Engine(
        rule_cache=rule_cache,
        matcher=Matcher(filter_store, tz=config.timezone),
        dispatcher=Dispatcher(message_store, routes),
        message_store=message_store,
        interpreter=CommandInterpreter(filter_store, rule_cache, config.admin_numbers, channels),
    )
