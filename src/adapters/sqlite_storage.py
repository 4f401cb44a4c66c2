"""SQLite storage adapters.

Implements the core FilterStorePort and MessageStorePort using a simple
SQLite database. Nested entity data is stored as JSON next to the few columns
we query or constrain on.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from core.errors import ConflictingWriteError, DuplicateKeyError, StoreError
from core.models import Filter, FilterStats, Message
from core.serialization import build_filter, filter_to_dict, message_from_dict, message_to_dict

LOGGER = logging.getLogger(__name__)


class SQLiteDatabase:
    """Connection factory and schema owner shared by both stores."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - filters: one row per filter, unique by name
        - messages: one row per inbound message, unique by message_id
        """

        with self.connect() as conn:
            # Fields:
            # - id: auto-increment primary key used by update_fields
            # - name: unique, human-chosen identifier
            # - enabled: 1/0, queried on every evaluation pass
            # - matches / last_match: stats written by the matcher only
            # - data: JSON of the remaining filter definition
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS filters (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    matches INTEGER NOT NULL DEFAULT 0,
                    last_match TIMESTAMP,
                    data TEXT NOT NULL
                )
                """
            )
            # Fields:
            # - message_id: provider-assigned id (PRIMARY KEY, duplicates rejected)
            # - status: received/processed/filtered/archived
            # - version: optimistic concurrency counter bumped on every save
            # - timestamp: original message instant
            # - data: JSON of the normalized message
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    message_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    timestamp TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )


def _filter_from_row(row: sqlite3.Row) -> Filter:
    raw = json.loads(row["data"])
    raw["id"] = row["id"]
    raw["name"] = row["name"]
    raw["enabled"] = bool(row["enabled"])
    raw["stats"] = {"matches": row["matches"], "lastMatch": row["last_match"]}
    return build_filter(raw)


class SQLiteFilterStore:
    """Thin SQLite wrapper that satisfies the FilterStorePort contract."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _query(self, sql: str, params: tuple = ()) -> List[Filter]:
        try:
            with self._db.connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"filter query failed: {exc}") from exc
        filters: List[Filter] = []
        for row in rows:
            try:
                filters.append(_filter_from_row(row))
            except (KeyError, ValueError, TypeError) as exc:
                # A malformed row is skipped so the remaining filters still load.
                LOGGER.error("Skipping malformed filter %s (%s): %s", row["id"], row["name"], exc)
        return filters

    def find_enabled(self) -> List[Filter]:
        return self._query("SELECT * FROM filters WHERE enabled = 1 ORDER BY id")

    def find_all(self) -> List[Filter]:
        return self._query("SELECT * FROM filters ORDER BY id")

    def find_by_name(self, name: str) -> Optional[Filter]:
        found = self._query("SELECT * FROM filters WHERE name = ?", (name,))
        return found[0] if found else None

    def save(self, filter_: Filter) -> Filter:
        """Insert a new filter or update an existing one (stats are left alone)."""

        data = filter_to_dict(filter_)
        for key in ("id", "name", "enabled", "stats"):
            data.pop(key, None)
        payload = json.dumps(data, ensure_ascii=False)
        try:
            with self._db.connect() as conn:
                if filter_.id is None:
                    cur = conn.execute(
                        "INSERT INTO filters (name, enabled, data) VALUES (?, ?, ?)",
                        (filter_.name, int(filter_.enabled), payload),
                    )
                    filter_id = cur.lastrowid
                else:
                    cur = conn.execute(
                        "UPDATE filters SET name = ?, enabled = ?, data = ? WHERE id = ?",
                        (filter_.name, int(filter_.enabled), payload, filter_.id),
                    )
                    if cur.rowcount == 0:
                        raise StoreError(f"filter {filter_.id} does not exist")
                    filter_id = filter_.id
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(f"filter name '{filter_.name}' already exists") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"filter save failed: {exc}") from exc
        saved = self._query("SELECT * FROM filters WHERE id = ?", (filter_id,))
        return saved[0]

    def update_fields(self, filter_id: int, fields: Mapping[str, Any]) -> None:
        """Partial update; supports ``enabled`` and ``stats``."""

        assignments: List[str] = []
        params: List[Any] = []
        for key, value in fields.items():
            if key == "enabled":
                assignments.append("enabled = ?")
                params.append(int(bool(value)))
            elif key == "stats" and isinstance(value, FilterStats):
                assignments.extend(["matches = ?", "last_match = ?"])
                params.extend([value.matches, value.last_match.isoformat() if value.last_match else None])
            else:
                raise StoreError(f"unsupported filter field: {key}")
        if not assignments:
            return
        params.append(filter_id)
        try:
            with self._db.connect() as conn:
                conn.execute(f"UPDATE filters SET {', '.join(assignments)} WHERE id = ?", params)
        except sqlite3.Error as exc:
            raise StoreError(f"filter update failed: {exc}") from exc


class SQLiteMessageStore:
    """Message persistence with duplicate rejection and optimistic concurrency."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def create(self, message: Message) -> None:
        created_at = datetime.now(timezone.utc)
        try:
            with self._db.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO messages (message_id, status, version, timestamp, created_at, data)
                    VALUES (?, ?, 0, ?, ?, ?)
                    """,
                    (
                        message.message_id,
                        message.status.value,
                        message.timestamp.isoformat(),
                        created_at.isoformat(),
                        json.dumps(message_to_dict(message), ensure_ascii=False),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKeyError(f"message {message.message_id} already exists") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"message insert failed: {exc}") from exc
        message.version = 0

    def save(self, message: Message) -> None:
        """Write the message back if nobody saved it since we loaded it."""

        try:
            with self._db.connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE messages SET status = ?, version = version + 1, data = ?
                    WHERE message_id = ? AND version = ?
                    """,
                    (
                        message.status.value,
                        json.dumps(message_to_dict(message), ensure_ascii=False),
                        message.message_id,
                        message.version,
                    ),
                )
                updated = cur.rowcount
        except sqlite3.Error as exc:
            raise StoreError(f"message save failed: {exc}") from exc
        if updated == 0:
            if self.get(message.message_id) is None:
                raise StoreError(f"message {message.message_id} does not exist")
            raise ConflictingWriteError(f"message {message.message_id} was saved concurrently")
        message.version += 1

    def get(self, message_id: str) -> Optional[Message]:
        try:
            with self._db.connect() as conn:
                row = conn.execute(
                    "SELECT data, version FROM messages WHERE message_id = ?",
                    (message_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"message query failed: {exc}") from exc
        if row is None:
            return None
        return message_from_dict(json.loads(row["data"]), version=row["version"])
