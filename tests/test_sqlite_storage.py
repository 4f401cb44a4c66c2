from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from adapters.sqlite_storage import SQLiteDatabase, SQLiteFilterStore, SQLiteMessageStore
from core.errors import ConflictingWriteError, DuplicateKeyError, StoreError
from core.models import Filter, FilterActions, FilterStats, GroupInfo, MessageStatus, Priority, TimeRange

from fakes import make_message


@pytest.fixture()
def database(tmp_path) -> SQLiteDatabase:
    db = SQLiteDatabase(str(tmp_path / "organizer.db"))
    db.init_db()
    return db


def test_filter_save_and_reload(database) -> None:
    store = SQLiteFilterStore(database)
    saved = store.save(
        Filter(
            name="Work",
            keywords=("invoice",),
            time_range=TimeRange(start="09:00", end="18:00", days=(1, 2, 3, 4, 5)),
            actions=FilterActions(set_priority=Priority.HIGH, add_tags=("work",)),
        )
    )

    assert saved.id is not None
    loaded = store.find_by_name("Work")
    assert loaded == saved
    assert loaded.time_range.days == (1, 2, 3, 4, 5)
    assert loaded.actions.set_priority == Priority.HIGH


def test_duplicate_filter_name_is_rejected(database) -> None:
    store = SQLiteFilterStore(database)
    store.save(Filter(name="Work"))
    with pytest.raises(DuplicateKeyError):
        store.save(Filter(name="Work"))


def test_find_enabled_keeps_insertion_order(database) -> None:
    store = SQLiteFilterStore(database)
    for name, enabled in [("a", True), ("b", False), ("c", True)]:
        store.save(Filter(name=name, enabled=enabled))

    assert [f.name for f in store.find_enabled()] == ["a", "c"]
    assert [f.name for f in store.find_all()] == ["a", "b", "c"]


def test_stats_update_survives_definition_save(database) -> None:
    store = SQLiteFilterStore(database)
    saved = store.save(Filter(name="a"))
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    store.update_fields(saved.id, {"stats": FilterStats(matches=3, last_match=when)})
    store.save(replace(store.find_by_name("a"), keywords=("x",)))

    reloaded = store.find_by_name("a")
    assert reloaded.stats == FilterStats(matches=3, last_match=when)
    assert reloaded.keywords == ("x",)


def test_unsupported_field_update_is_rejected(database) -> None:
    store = SQLiteFilterStore(database)
    saved = store.save(Filter(name="a"))
    with pytest.raises(StoreError):
        store.update_fields(saved.id, {"keywords": ("x",)})


def test_message_create_get_and_duplicate(database) -> None:
    store = SQLiteMessageStore(database)
    message = make_message()
    message.metadata.group = GroupInfo(name="Team", id="-100")
    store.create(message)

    with pytest.raises(DuplicateKeyError):
        store.create(make_message())

    loaded = store.get("wamid.1")
    assert loaded.sender.phone_number == "+393470000001"
    assert loaded.metadata.group == GroupInfo(name="Team", id="-100")
    assert loaded.timestamp == message.timestamp
    assert store.get("missing") is None


def test_stale_save_raises_conflict(database) -> None:
    store = SQLiteMessageStore(database)
    store.create(make_message())
    first = store.get("wamid.1")
    second = store.get("wamid.1")

    first.advance_to(MessageStatus.PROCESSED)
    store.save(first)
    second.advance_to(MessageStatus.FILTERED)

    with pytest.raises(ConflictingWriteError):
        store.save(second)
    assert store.get("wamid.1").status == MessageStatus.PROCESSED


def test_save_of_unknown_message_is_a_store_error(database) -> None:
    store = SQLiteMessageStore(database)
    with pytest.raises(StoreError):
        store.save(make_message())


def test_malformed_filter_row_is_skipped(database) -> None:
    store = SQLiteFilterStore(database)
    store.save(Filter(name="good"))
    with database.connect() as conn:
        conn.execute(
            "INSERT INTO filters (name, enabled, data) VALUES (?, 1, ?)",
            ("bad", '{"messageTypes": ["gif"]}'),
        )
        conn.execute("INSERT INTO filters (name, enabled, data) VALUES (?, 1, ?)", ("garbled", "{not json"))

    assert [f.name for f in store.find_enabled()] == ["good"]
    assert store.find_by_name("bad") is None
