"""
gameport/storage.py - Durable key -> JSON document storage.

All durable reads and writes go through DocumentStore. One instance per
process, backed by a single SQLite file (or :memory: for tests). Each
logical key holds one whole JSON document; saving a key always rewrites
the full document.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .errors import StorageCorruption

# ----------------------------------------------------------------------
# Logical keys
# ----------------------------------------------------------------------

USERS_KEY = "gameport_users_db"
TOURNAMENTS_KEY = "gameport_tournaments"
TEAMS_KEY = "gameport_teams"
REQUESTS_KEY = "gameport_requests"
VIP_REQUESTS_KEY = "gameport_vip_requests"
HERO_SLIDES_KEY = "gameport_hero_slides"
LOGIN_BANNERS_KEY = "gameport_login_banners"
SYSTEM_STATUS_KEY = "gameport_system_status"
BACKUP_KEY = "gameport_auto_recovery"
SESSION_KEY = "gameport_session_user"


class DocumentStore:
    """Thin wrapper around SQLite for whole-document storage."""

    def __init__(self, path: str = "gameport.db"):
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                body TEXT NOT NULL,
                updated_at TEXT
            );
            """
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def load(self, key: str) -> Any | None:
        """Fetch and decode a document. Returns None if the key is absent.

        Raises StorageCorruption if the stored text is not valid JSON.
        """
        row = self._conn.execute(
            "SELECT body FROM documents WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["body"])
        except json.JSONDecodeError as e:
            raise StorageCorruption(key, str(e)) from e

    def save(self, key: str, document: Any) -> None:
        """Replace the whole document stored under key."""
        body = json.dumps(document)
        self._conn.execute(
            "INSERT INTO documents (key, body, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at",
            (key, body, _now()),
        )
        self._conn.commit()

    def save_raw(self, key: str, body: str) -> None:
        """Store text as-is. Lets tools and tests plant arbitrary bodies."""
        self._conn.execute(
            "INSERT INTO documents (key, body, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at",
            (key, body, _now()),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM documents WHERE key = ?", (key,))
        self._conn.commit()

    def keys(self) -> list[str]:
        rows = self._conn.execute("SELECT key FROM documents ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def updated_at(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT updated_at FROM documents WHERE key = ?", (key,)
        ).fetchone()
        return row["updated_at"] if row else None

    def close(self) -> None:
        self._conn.close()


def _now() -> str:
    """ISO timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()
