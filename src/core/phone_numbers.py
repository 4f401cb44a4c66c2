"""Helpers for working with phone numbers coming from chat transports."""

from __future__ import annotations

import re
from typing import Iterable

MIN_DIGITS = 7


def digits_only(raw: object) -> str:
    """Strip everything but digits: "+39 347-123" -> "39347123"."""

    if raw is None:
        return ""
    return re.sub(r"\D", "", str(raw))


def normalize_allow_list(numbers: Iterable[str]) -> frozenset[str]:
    """Digit-normalize an allow-list, dropping entries without digits."""

    return frozenset(filter(None, (digits_only(number) for number in numbers)))


def is_allowed(phone_number: object, allow_list: frozenset[str]) -> bool:
    normalized = digits_only(phone_number)
    return bool(normalized) and normalized in allow_list


def format_phone_number(raw: object) -> str:
    """Return a dialable international number ("+<digits>").

    Raises ValueError when the value does not look like a phone number.
    """

    text = re.sub(r"\s+", "", str(raw or ""))
    text = re.sub(r"[^\d+]", "", text)
    if text.startswith("+"):
        text = text[1:]
    if not text.isdigit():
        raise ValueError(f"Phone number contains invalid characters: {raw!r}")
    if len(text) < MIN_DIGITS:
        raise ValueError(f"Phone number is too short: {raw!r}")
    return f"+{text}"
