"""
Durable key/value storage (SQLite).

Mirrors browser localStorage semantics: string keys, string values, a
per-value size quota. Task collections, the current session, and the local
user registry all live here under their own keys.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional


class StorageError(Exception):
    """Raised when a storage read or write fails."""
    pass


class StorageQuotaExceeded(StorageError):
    """Raised when a value is larger than the configured quota."""
    pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class LocalStorage:
    """SQLite-backed string key/value store."""

    def __init__(self, db_path: str = None, quota_bytes: int = 5 * 1024 * 1024):
        """Initialize storage and create the table if needed. quota_bytes=0 disables the quota."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "storage.db")
        self.db_path = db_path
        self.quota_bytes = quota_bytes
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM storage WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read {key}: {e}") from e
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Insert or replace a value."""
        if self.quota_bytes and len(value.encode("utf-8")) > self.quota_bytes:
            raise StorageQuotaExceeded(
                f"Value for {key} exceeds quota of {self.quota_bytes} bytes"
            )
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO storage (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """, (key, value, now))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM storage WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot remove {key}: {e}") from e

    def keys(self) -> List[str]:
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute("SELECT key FROM storage ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot list keys: {e}") from e
        return [r["key"] for r in rows]
