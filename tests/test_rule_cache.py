from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace

from core.models import Filter
from core.rule_cache import RuleCache

from fakes import FakeFilterStore


def test_refresh_loads_enabled_filters_in_order() -> None:
    store = FakeFilterStore([Filter(name="a"), Filter(name="b", enabled=False), Filter(name="c")])
    cache = RuleCache(store)

    assert cache.current() == ()
    snapshot = cache.refresh()

    assert [f.name for f in snapshot] == ["a", "c"]
    assert cache.current() is snapshot
    assert cache.loaded


def test_refresh_picks_up_edits_immediately() -> None:
    store = FakeFilterStore([Filter(name="a")])
    cache = RuleCache(store)
    cache.refresh()

    store.save(replace(store.filters[0], enabled=False))

    assert cache.refresh() == ()


def test_store_failure_keeps_last_snapshot(caplog) -> None:
    store = FakeFilterStore([Filter(name="a")])
    cache = RuleCache(store)
    first = cache.refresh()

    store.fail_reads = True
    with caplog.at_level(logging.WARNING):
        again = cache.refresh()

    assert again is first
    assert "degraded" in caplog.text


def test_failure_before_first_load_yields_empty_snapshot() -> None:
    store = FakeFilterStore([Filter(name="a")])
    store.fail_reads = True
    cache = RuleCache(store)

    assert cache.refresh() == ()
    assert not cache.loaded


class BlockingFilterStore(FakeFilterStore):
    """Holds find_enabled() open until released, counting concurrent readers."""

    def __init__(self, filters) -> None:
        super().__init__(filters)
        self.block = False
        self.entered = threading.Event()
        self.release = threading.Event()
        self.active = 0
        self.max_active = 0
        self._counter = threading.Lock()

    def find_enabled(self) -> list[Filter]:
        with self._counter:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.block:
                self.entered.set()
                self.release.wait(timeout=5)
            return super().find_enabled()
        finally:
            with self._counter:
                self.active -= 1


def test_readers_see_previous_snapshot_while_refresh_runs() -> None:
    store = BlockingFilterStore([Filter(name="a")])
    cache = RuleCache(store)
    previous = cache.refresh()

    store.save(Filter(name="b"))
    store.block = True
    first = threading.Thread(target=cache.refresh)
    second = threading.Thread(target=cache.refresh)
    first.start()
    assert store.entered.wait(timeout=5)

    second.start()
    time.sleep(0.05)
    during = cache.current()
    still_one_reader = store.active == 1

    store.release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert during is previous
    assert [f.name for f in during] == ["a"]
    assert still_one_reader
    assert store.max_active == 1
    assert [f.name for f in cache.current()] == ["a", "b"]
