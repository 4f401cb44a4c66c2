"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any transport-specific types. Filters are immutable snapshots
(updates produce new instances); messages are mutated in place as they move
through the status state machine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from core.errors import InvalidTransitionError


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    LOCATION = "location"
    CONTACT = "contact"
    STICKER = "sticker"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class KeywordMatchMode(str, Enum):
    ANY = "ANY"
    ALL = "ALL"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "KeywordMatchMode":
        """Accept ANY/ALL as well as the legacy OR/AND spellings."""

        if not raw:
            return cls.ANY
        value = str(raw).strip().upper()
        if value in ("ANY", "OR"):
            return cls.ANY
        if value in ("ALL", "AND"):
            return cls.ALL
        raise ValueError(f"Unsupported keyword match mode: {raw}")


class MessageStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    FILTERED = "filtered"
    ARCHIVED = "archived"


# Forward edges of the message state machine.
_TRANSITIONS = {
    MessageStatus.RECEIVED: {MessageStatus.PROCESSED, MessageStatus.FILTERED},
    MessageStatus.FILTERED: {MessageStatus.ARCHIVED},
    MessageStatus.PROCESSED: set(),
    MessageStatus.ARCHIVED: set(),
}

# States a message has already moved past; advancing to them is a no-op.
_PASSED = {
    MessageStatus.RECEIVED: set(),
    MessageStatus.PROCESSED: {MessageStatus.RECEIVED},
    MessageStatus.FILTERED: {MessageStatus.RECEIVED},
    MessageStatus.ARCHIVED: {MessageStatus.RECEIVED, MessageStatus.FILTERED},
}


@dataclass(frozen=True)
class Author:
    phone_number: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class TimeRange:
    """Wall-clock window (HH:mm) plus weekday indices, 0=Sunday..6=Saturday."""

    start: Optional[str] = None
    end: Optional[str] = None
    days: Tuple[int, ...] = ()


@dataclass(frozen=True)
class AutoReply:
    enabled: bool = False
    message: str = ""


@dataclass(frozen=True)
class FilterActions:
    mark_as_important: bool = False
    set_priority: Optional[Priority] = None
    add_tags: Tuple[str, ...] = ()
    auto_reply: AutoReply = AutoReply()
    forward_to: Tuple[str, ...] = ()
    archive: bool = False


@dataclass(frozen=True)
class FilterStats:
    matches: int = 0
    last_match: Optional[datetime] = None


@dataclass(frozen=True)
class Filter:
    """A named rule: match criteria plus the actions to run on a match."""

    name: str
    id: Optional[int] = None
    description: str = ""
    authors: Tuple[Author, ...] = ()
    keywords: Tuple[str, ...] = ()
    keyword_match_mode: KeywordMatchMode = KeywordMatchMode.ANY
    message_types: Tuple[ContentType, ...] = ()
    time_range: Optional[TimeRange] = None
    actions: FilterActions = FilterActions()
    enabled: bool = True
    stats: FilterStats = FilterStats()


@dataclass(frozen=True)
class Sender:
    phone_number: str
    name: Optional[str] = None
    profile_name: Optional[str] = None


@dataclass(frozen=True)
class Media:
    url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None


@dataclass(frozen=True)
class Location:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class MessageContent:
    type: ContentType
    text: Optional[str] = None
    media: Optional[Media] = None
    location: Optional[Location] = None


@dataclass(frozen=True)
class GroupInfo:
    name: str
    id: Optional[str] = None


@dataclass
class MessageMetadata:
    is_important: bool = False
    priority: Priority = Priority.MEDIUM
    tags: list[str] = field(default_factory=list)
    notes: Optional[str] = None
    source: Optional[str] = None
    group: Optional[GroupInfo] = None

    def add_tag(self, tag: str) -> bool:
        """Union a tag into the tag list; return False when already present."""

        if tag in self.tags:
            return False
        self.tags.append(tag)
        return True


@dataclass
class Message:
    """Normalized inbound message, mutated in place through its lifecycle."""

    message_id: str
    sender: Sender
    content: MessageContent
    timestamp: datetime
    recipient: Optional[str] = None
    status: MessageStatus = MessageStatus.RECEIVED
    metadata: MessageMetadata = field(default_factory=MessageMetadata)
    version: int = 0

    @property
    def text(self) -> str:
        return self.content.text or ""

    def advance_to(self, target: MessageStatus) -> bool:
        """Move the message forward in the status state machine.

        Returns True when the status changed. Advancing to the current state or
        to a state the message already moved past is a no-op; every other move
        raises InvalidTransitionError.
        """

        if target == self.status or target in _PASSED[self.status]:
            return False
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"{self.message_id}: cannot move from {self.status.value} to {target.value}"
            )
        self.status = target
        return True


@dataclass(frozen=True)
class DetachedOutcome:
    """Result of a best-effort side effect whose failure never propagates."""

    action: str
    target: Optional[str] = None
    ok: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class DeliveryResult:
    """What a channel reports back after a successful send."""

    channel: str
    destination: str
    provider_message_id: Optional[str] = None


@dataclass(frozen=True)
class FilterOutcome:
    filter_name: str
    persisted: bool
    persist_error: Optional[str] = None
    side_effects: Tuple[DetachedOutcome, ...] = ()

    @property
    def failures(self) -> Tuple[DetachedOutcome, ...]:
        return tuple(outcome for outcome in self.side_effects if not outcome.ok)


@dataclass(frozen=True)
class DispatchReport:
    message_id: str
    outcomes: Tuple[FilterOutcome, ...] = ()


@dataclass(frozen=True)
class ProcessReport:
    """What the engine did with one inbound message."""

    message_id: str
    accepted: bool
    status: Optional[MessageStatus] = None
    matched_filters: Tuple[str, ...] = ()
    dispatch: Optional[DispatchReport] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: str
