from __future__ import annotations

import pytest

from core.phone_numbers import digits_only, format_phone_number, is_allowed, normalize_allow_list


def test_digits_only() -> None:
    assert digits_only("+39 347-000 0001") == "393470000001"
    assert digits_only(None) == ""


def test_allow_list_ignores_formatting() -> None:
    allow_list = normalize_allow_list(["+39 347 000 0001", "", "n/a"])
    assert allow_list == frozenset({"393470000001"})
    assert is_allowed("393470000001", allow_list)
    assert is_allowed("+39-347-000-0001", allow_list)
    assert not is_allowed("+1555000", allow_list)
    assert not is_allowed("", allow_list)


def test_format_phone_number() -> None:
    assert format_phone_number("39 347 000 0001") == "+393470000001"
    assert format_phone_number("+1 (555) 123-4567") == "+15551234567"


@pytest.mark.parametrize("raw", ["", "+12", "abc"])
def test_format_phone_number_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        format_phone_number(raw)
