"""Action dispatch for matched filters.

For each matched filter, in filter-list order, the dispatcher runs a fixed
sequence: metadata mutation, persistence, auto-reply, channel forwarding.
Every step is isolated: a failure is recorded on that filter's outcome and
processing continues with the next step and the next filter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from core.config import ChannelConfig
from core.errors import ConflictingWriteError, InvalidTransitionError, StoreError
from core.models import (
    DetachedOutcome,
    DispatchReport,
    Filter,
    FilterActions,
    FilterOutcome,
    Message,
    MessageStatus,
)
from core.ports import ChannelPort, MessageStorePort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardingRoute:
    """A channel paired with its forwarding configuration."""

    channel: ChannelPort
    config: ChannelConfig


def apply_metadata_actions(message: Message, actions: FilterActions) -> None:
    """Apply the in-memory part of a filter's actions to the message."""

    if actions.mark_as_important:
        message.metadata.is_important = True
    if actions.set_priority:
        message.metadata.priority = actions.set_priority
    for tag in actions.add_tags:
        message.metadata.add_tag(tag)
    if actions.archive:
        message.advance_to(MessageStatus.ARCHIVED)


class Dispatcher:
    """Executes matched filters' actions against the message store and channels."""

    def __init__(self, store: MessageStorePort, routes: Sequence[ForwardingRoute]) -> None:
        self._store = store
        self._routes = list(routes)

    def channel_for(self, name: Optional[str]) -> Optional[ChannelPort]:
        for route in self._routes:
            if route.channel.name == name:
                return route.channel
        return None

    async def dispatch(self, message: Message, filters: Iterable[Filter]) -> DispatchReport:
        filters = list(filters)
        if filters:
            message.advance_to(MessageStatus.FILTERED)
        outcomes: List[FilterOutcome] = []
        for filter_ in filters:
            outcomes.append(await self._run_filter(message, filter_))
        return DispatchReport(message_id=message.message_id, outcomes=tuple(outcomes))

    async def _run_filter(self, message: Message, filter_: Filter) -> FilterOutcome:
        side_effects: List[DetachedOutcome] = []
        actions = filter_.actions

        try:
            apply_metadata_actions(message, actions)
        except InvalidTransitionError as exc:
            LOGGER.warning("Filter %s: %s", filter_.name, exc)
            side_effects.append(DetachedOutcome(action="metadata", target=filter_.name, ok=False, error=str(exc)))

        persisted, persist_error = self._persist(message, filter_)

        if actions.auto_reply.enabled:
            side_effects.append(await self._auto_reply(message, actions.auto_reply.message))

        side_effects.extend(await self._forward(message, filter_))

        return FilterOutcome(
            filter_name=filter_.name,
            persisted=persisted,
            persist_error=persist_error,
            side_effects=tuple(side_effects),
        )

    def _persist(self, message: Message, filter_: Filter) -> tuple[bool, Optional[str]]:
        try:
            self._store.save(message)
        except ConflictingWriteError:
            # Another path already saved this message; nothing to do.
            LOGGER.debug("Concurrent save of %s ignored", message.message_id)
            return True, None
        except StoreError as exc:
            LOGGER.error("Failed to persist %s after filter %s: %s", message.message_id, filter_.name, exc)
            return False, str(exc)
        return True, None

    async def _auto_reply(self, message: Message, text: str) -> DetachedOutcome:
        destination = message.sender.phone_number
        channel = self.channel_for(message.metadata.source)
        if channel is None or not channel.is_available():
            LOGGER.info("Auto-reply to %s skipped: channel %s unavailable", destination, message.metadata.source)
            return DetachedOutcome(action="auto_reply", target=destination, ok=False, error="channel unavailable")
        try:
            await channel.send(destination, text)
        except Exception as exc:
            LOGGER.error("Auto-reply to %s failed: %s", destination, exc)
            return DetachedOutcome(action="auto_reply", target=destination, ok=False, error=str(exc))
        LOGGER.info("Auto-reply sent to %s", destination)
        return DetachedOutcome(action="auto_reply", target=destination)

    async def _forward(self, message: Message, filter_: Filter) -> List[DetachedOutcome]:
        routes = [route for route in self._routes if route.config.forward_enabled]
        # Channels run concurrently so a slow channel only delays itself.
        results = await asyncio.gather(*(self._forward_on(route, message, filter_) for route in routes))
        return [outcome for outcomes in results for outcome in outcomes]

    async def _forward_on(self, route: ForwardingRoute, message: Message, filter_: Filter) -> List[DetachedOutcome]:
        channel = route.channel
        try:
            available = channel.is_available()
        except Exception:
            LOGGER.exception("Availability check failed for channel %s", channel.name)
            available = False
        if not available:
            LOGGER.debug("Channel %s unavailable, skipping forward", channel.name)
            return []

        outcomes: List[DetachedOutcome] = []
        if route.config.broadcast_destination:
            outcomes.append(
                await self._forward_one(channel, message, route.config.broadcast_destination, filter_.name)
            )
        for destination in filter_.actions.forward_to:
            outcomes.append(await self._forward_one(channel, message, destination, filter_.name))
        return outcomes

    async def _forward_one(
        self, channel: ChannelPort, message: Message, destination: str, label: str
    ) -> DetachedOutcome:
        action = f"forward:{channel.name}"
        try:
            await channel.forward(message, destination, label)
        except Exception as exc:
            LOGGER.error("Forward via %s to %s failed: %s", channel.name, destination, exc)
            return DetachedOutcome(action=action, target=destination, ok=False, error=str(exc))
        LOGGER.info("Forwarded %s via %s to %s", message.message_id, channel.name, destination)
        return DetachedOutcome(action=action, target=destination)
