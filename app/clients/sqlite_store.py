"""SQLite-backed key-value store for small JSON configuration blobs."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Persist JSON documents under fixed string keys."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_blobs (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

    def set_json(self, key: str, value: Any) -> None:
        if not key:
            raise ValueError("Key must be a non-empty string")
        data_json = json.dumps(value)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_blobs (key, data, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (key, data_json, time.time()),
            )

    def get_json(self, key: str) -> Optional[Any]:
        """Return the stored document, or None when absent or unreadable."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM kv_blobs WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt stored value for key '%s'.", key)
            self.delete(key)
            return None

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_blobs WHERE key = ?", (key,))


__all__ = ["SQLiteStore"]
