from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable
from pathlib import Path

from .base import DEFAULT_TTL

TABLE_NAME = "processed_updates"


def _init_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            update_id TEXT PRIMARY KEY,
            processed_at REAL NOT NULL,
            expires_at REAL NOT NULL
        )
        """
    )
    conn.execute(
        f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_expires_at "
        f"ON {TABLE_NAME}(expires_at)"
    )
    conn.commit()


class SqliteUpdateStorage:
    """Processed ids kept in a sqlite table so they survive restarts.

    Expired rows are swept every time an id is marked.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = connection
        self._clock = clock
        _init_schema(self._conn)

    @classmethod
    def open(cls, path: str | Path) -> SqliteUpdateStorage:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        return cls(sqlite3.connect(str(path), check_same_thread=False))

    def has(self, update_id: str) -> bool:
        row = self._conn.execute(
            f"SELECT 1 FROM {TABLE_NAME} WHERE update_id = ? AND expires_at > ?",
            (str(update_id), self._clock()),
        ).fetchone()
        return row is not None

    def mark_as_processed(self, update_id: str, ttl: float = DEFAULT_TTL) -> None:
        now = self._clock()
        with self._conn:
            self._conn.execute(
                f"""
                INSERT INTO {TABLE_NAME} (update_id, processed_at, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(update_id) DO UPDATE SET
                    processed_at = excluded.processed_at,
                    expires_at = excluded.expires_at
                """,
                (str(update_id), now, now + ttl),
            )
            self._conn.execute(
                f"DELETE FROM {TABLE_NAME} WHERE expires_at <= ?", (now,)
            )

    def close(self) -> None:
        self._conn.close()
