"""Filter matching logic (core domain)."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone, tzinfo
from typing import Callable, Iterable, List, Optional

from core.errors import StoreError
from core.models import DetachedOutcome, Filter, FilterStats, KeywordMatchMode, Message, TimeRange
from core.phone_numbers import digits_only
from core.ports import FilterStorePort

LOGGER = logging.getLogger(__name__)


def _author_matches(message: Message, filter_: Filter) -> bool:
    sender = message.sender
    # Numbers compare by digits: "+39 347 000 0001" equals "393470000001".
    sender_digits = digits_only(sender.phone_number)
    for author in filter_.authors:
        author_digits = digits_only(author.phone_number)
        if author_digits and author_digits == sender_digits:
            return True
        if author.name and author.name == sender.name:
            return True
    return False


def _keywords_match(text: str, keywords: Iterable[str], mode: KeywordMatchMode) -> bool:
    lowered = text.lower()
    hits = [keyword.lower() in lowered for keyword in keywords]
    if mode == KeywordMatchMode.ALL:
        return all(hits)
    return any(hits)


def local_wall_clock(timestamp: datetime, tz: Optional[tzinfo] = None) -> tuple[str, int]:
    """Return ("HH:MM", weekday) with weekday 0=Sunday..6=Saturday."""

    local = timestamp.astimezone(tz) if tz else timestamp.astimezone()
    # datetime.weekday() is Monday=0; shift so Sunday=0.
    return local.strftime("%H:%M"), (local.weekday() + 1) % 7


def _time_window_matches(timestamp: datetime, time_range: TimeRange, tz: Optional[tzinfo]) -> bool:
    wall_clock, weekday = local_wall_clock(timestamp, tz)
    # Zero-padded HH:MM strings order the same way as the times they encode.
    if time_range.start and time_range.end:
        if wall_clock < time_range.start or wall_clock > time_range.end:
            return False
    if time_range.days and weekday not in time_range.days:
        return False
    return True


def filter_matches(message: Message, filter_: Filter, tz: Optional[tzinfo] = None) -> bool:
    """Evaluate one filter against one message.

    Categories are AND'ed and evaluated in order (author, keywords, content
    type, time window); an empty category is skipped, so a filter with every
    category empty matches any message. Configured keywords require the
    message to carry text.
    """

    if filter_.authors and not _author_matches(message, filter_):
        return False

    if filter_.keywords:
        if not message.text:
            return False
        if not _keywords_match(message.text, filter_.keywords, filter_.keyword_match_mode):
            return False

    if filter_.message_types and message.content.type not in filter_.message_types:
        return False

    if filter_.time_range and not _time_window_matches(message.timestamp, filter_.time_range, tz):
        return False

    return True


class Matcher:
    """Matches messages against filters and records per-filter stats."""

    def __init__(
        self,
        store: FilterStorePort,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._tz = tz
        self._clock = clock

    def matches(self, message: Message, filter_: Filter) -> bool:
        if not filter_matches(message, filter_, self._tz):
            return False
        outcome = self.record_match(filter_)
        if not outcome.ok:
            LOGGER.warning("Could not record match for filter %s: %s", filter_.name, outcome.error)
        return True

    def record_match(self, filter_: Filter) -> DetachedOutcome:
        """Bump the filter's match counter; failures are returned, not raised."""

        if filter_.id is None:
            return DetachedOutcome(action="stats", target=filter_.name, ok=False, error="filter has no id")
        stats = replace(filter_.stats, matches=filter_.stats.matches + 1, last_match=self._clock())
        try:
            self._store.update_fields(filter_.id, {"stats": stats})
        except StoreError as exc:
            return DetachedOutcome(action="stats", target=filter_.name, ok=False, error=str(exc))
        return DetachedOutcome(action="stats", target=filter_.name)

    def match_all(self, message: Message, filters: Iterable[Filter]) -> List[Filter]:
        """Return matching filters in list order.

        A filter whose evaluation raises is logged and treated as not matching
        so one malformed rule cannot halt message intake.
        """

        matched: List[Filter] = []
        for filter_ in filters:
            try:
                if self.matches(message, filter_):
                    matched.append(filter_)
            except Exception:
                LOGGER.exception("Error while evaluating filter %s", filter_.name)
        return matched
