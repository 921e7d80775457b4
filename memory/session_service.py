"""Session-scoped key/value storage for client state.

This module provides the storage the contract store persists into. Two
implementations share one interface:
- InMemorySessionStorage: process-local, gone when the process exits
- SQLiteSessionStorage: survives restarts so a CLI session can resume
"""

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

from copilot.error_handling import SessionError


class InMemorySessionStorage:
    """Dictionary-backed storage keyed by (session_id, key)."""

    def __init__(self):
        self._items: Dict[Tuple[str, str], str] = {}

    def get_item(self, session_id: str, key: str) -> Optional[str]:
        return self._items.get((session_id, key))

    def set_item(self, session_id: str, key: str, value: str) -> None:
        self._items[(session_id, key)] = value

    def remove_item(self, session_id: str, key: str) -> None:
        self._items.pop((session_id, key), None)

    def clear_session(self, session_id: str) -> int:
        keys = [k for k in self._items if k[0] == session_id]
        for k in keys:
            del self._items[k]
        return len(keys)

    def list_sessions(self) -> List[str]:
        return sorted({session_id for session_id, _ in self._items})

    def cleanup_old_sessions(self) -> int:
        # Nothing outlives the process, so there is nothing to expire
        return 0


class SQLiteSessionStorage:
    """Session storage using SQLite for persistence across process restarts.

    Manages per-session key/value state with support for:
    - Item reads, writes and removal
    - Listing known sessions by recency
    - Configurable cleanup of idle sessions
    """

    def __init__(self, db_path: str = "legalsay_sessions.db", cleanup_hours: int = 24):
        """Initialize the SQLite session storage.

        Args:
            db_path: Path to SQLite database file
            cleanup_hours: Hours after which idle sessions are cleaned up
        """
        self.db_path = db_path
        self.cleanup_hours = cleanup_hours
        self._ensure_database_exists()
        logger.info(f"SQLiteSessionStorage initialized with db_path={db_path}, cleanup_hours={cleanup_hours}")

    def _ensure_database_exists(self):
        """Create database and tables if they don't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS state (
                        session_id TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY (session_id, key)
                    )
                """)

                cursor.execute("""
                    CREATE INDEX IF NOT EXISTS idx_state_updated_at
                    ON state(updated_at)
                """)

                conn.commit()
                logger.debug("Session storage schema initialized successfully")

        except sqlite3.Error as e:
            logger.error(f"Failed to initialize session storage at {self.db_path}: {e}")
            raise SessionError(f"Session storage initialization failed: {e}")

    def get_item(self, session_id: str, key: str) -> Optional[str]:
        """Read a stored value.

        Args:
            session_id: Session identifier
            key: Item key

        Returns:
            Stored string or None if absent
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT value FROM state WHERE session_id = ? AND key = ?",
                    (session_id, key)
                )
                row = cursor.fetchone()
                return row[0] if row else None

        except sqlite3.Error as e:
            logger.error(f"Failed to read {key} for session {session_id}: {e}")
            raise SessionError(f"Session read failed: {e}")

    def set_item(self, session_id: str, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT OR REPLACE INTO state (session_id, key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (session_id, key, value, datetime.utcnow().isoformat()))
                conn.commit()

            logger.debug(f"Stored {key} for session {session_id} ({len(value)} chars)")

        except sqlite3.Error as e:
            logger.error(f"Failed to write {key} for session {session_id}: {e}")
            raise SessionError(f"Session write failed: {e}")

    def remove_item(self, session_id: str, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM state WHERE session_id = ? AND key = ?", (session_id, key))
                conn.commit()

        except sqlite3.Error as e:
            logger.error(f"Failed to remove {key} for session {session_id}: {e}")
            raise SessionError(f"Session delete failed: {e}")

    def clear_session(self, session_id: str) -> int:
        """Delete every item of a session.

        Returns:
            Number of items removed
        """
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM state WHERE session_id = ?", (session_id,))
                removed = cursor.rowcount
                conn.commit()

            logger.info(f"Session cleared: {session_id} ({removed} items)")
            return removed

        except sqlite3.Error as e:
            logger.error(f"Failed to clear session {session_id}: {e}")
            raise SessionError(f"Session clear failed: {e}")

    def list_sessions(self) -> List[str]:
        """Session ids ordered by most recent activity."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT session_id, MAX(updated_at) AS last_update
                    FROM state
                    GROUP BY session_id
                    ORDER BY last_update DESC
                """)
                return [row[0] for row in cursor.fetchall()]

        except sqlite3.Error as e:
            logger.error(f"Failed to list sessions: {e}")
            raise SessionError(f"Session listing failed: {e}")

    def cleanup_old_sessions(self) -> int:
        """Remove sessions with no write in the last ``cleanup_hours`` hours.

        Returns:
            Number of sessions removed
        """
        cutoff = (datetime.utcnow() - timedelta(hours=self.cleanup_hours)).isoformat()

        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT session_id FROM state
                    GROUP BY session_id
                    HAVING MAX(updated_at) < ?
                """, (cutoff,))
                stale = [row[0] for row in cursor.fetchall()]

                for session_id in stale:
                    cursor.execute("DELETE FROM state WHERE session_id = ?", (session_id,))
                conn.commit()

            if stale:
                logger.info(f"Cleaned up {len(stale)} idle sessions older than {self.cleanup_hours}h")
            return len(stale)

        except sqlite3.Error as e:
            logger.error(f"Failed to clean up sessions: {e}")
            raise SessionError(f"Session cleanup failed: {e}")
