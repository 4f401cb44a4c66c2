"""In-memory snapshot of enabled filters, refreshed on every evaluation pass."""

from __future__ import annotations

import logging
import threading
from typing import Tuple

from core.errors import StoreError
from core.models import Filter
from core.ports import FilterStorePort

LOGGER = logging.getLogger(__name__)


class RuleCache:
    """Owned cache of enabled filters.

    The snapshot is an immutable tuple replaced by a single reference
    assignment, so readers calling current() see either the previous or the
    new snapshot, never a partial one. Refreshes are serialized by a lock;
    readers never take it.
    """

    def __init__(self, store: FilterStorePort) -> None:
        self._store = store
        self._snapshot: Tuple[Filter, ...] = ()
        self._refresh_lock = threading.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        """True once at least one refresh has succeeded."""

        return self._loaded

    def current(self) -> Tuple[Filter, ...]:
        return self._snapshot

    def refresh(self) -> Tuple[Filter, ...]:
        """Reload enabled filters; keep the last good snapshot on store failure."""

        with self._refresh_lock:
            try:
                filters = tuple(self._store.find_enabled())
            except StoreError as exc:
                LOGGER.warning(
                    "Filter store unavailable, using last snapshot of %s filters (degraded): %s",
                    len(self._snapshot),
                    exc,
                )
                return self._snapshot
            self._snapshot = tuple(f for f in filters if f.enabled)
            self._loaded = True
            LOGGER.debug("Loaded %s active filters", len(self._snapshot))
            return self._snapshot
