"""Exception hierarchy shared by the core and its adapters."""

from __future__ import annotations


class ChatOrganizerError(Exception):
    """Base class for every error raised by chat-organizer code."""


class MessageValidationError(ChatOrganizerError):
    """A normalized message is missing required fields."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


class StoreError(ChatOrganizerError):
    """A read or write against a persistent store failed."""


class DuplicateKeyError(StoreError):
    """An entity with the same unique key already exists."""


class ConflictingWriteError(StoreError):
    """A concurrent save of the same entity was detected."""


class ChannelError(ChatOrganizerError):
    """An outbound channel could not deliver a message."""


class CommandError(ChatOrganizerError):
    """An operator command could not be parsed or applied."""


class InvalidTransitionError(ChatOrganizerError):
    """A message status change that the state machine does not allow."""
