"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for storage and channel adapters so that
the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol

from core.models import DeliveryResult, Filter, Message


class FilterStorePort(Protocol):
    """Filter persistence required by the rule cache, matcher and commands."""

    def find_enabled(self) -> List[Filter]:
        ...

    def find_all(self) -> List[Filter]:
        ...

    def find_by_name(self, name: str) -> Optional[Filter]:
        ...

    def save(self, filter_: Filter) -> Filter:
        """Insert or update; raises DuplicateKeyError on a name collision."""
        ...

    def update_fields(self, filter_id: int, fields: Mapping[str, Any]) -> None:
        ...


class MessageStorePort(Protocol):
    """Message persistence required by the engine and dispatcher."""

    def create(self, message: Message) -> None:
        """Raises DuplicateKeyError when the message_id already exists."""
        ...

    def save(self, message: Message) -> None:
        """Raises ConflictingWriteError when a concurrent save won."""
        ...

    def get(self, message_id: str) -> Optional[Message]:
        ...


class ChannelPort(Protocol):
    """Outbound messaging capability; failures raise ChannelError."""

    name: str

    def is_available(self) -> bool:
        ...

    async def send(self, destination: str, text: str) -> DeliveryResult:
        ...

    async def forward(
        self, message: Message, destination: str, filter_label: Optional[str] = None
    ) -> DeliveryResult:
        ...
