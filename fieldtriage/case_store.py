"""
Case Store Module
=================
Durable local storage for the two engine collections: all cases and the
consult queue. Uses SQLite as a small key/value store; each key holds a
complete JSON array that is overwritten on every flush, so a crash can
lose at most the latest mutation and never leaves a half-written record.

Reads are lenient. A record that is missing, not valid JSON or not a JSON
array loads as an empty list instead of blocking startup.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

# Record keys
CASES_KEY = "cases"
CONSULT_QUEUE_KEY = "consultQueue"

# Database file location
DB_PATH = Path(
    os.getenv(
        "TRIAGE_DB_PATH",
        str(Path(__file__).parent.parent / "data" / "field_triage.db"),
    )
)


class CaseStore:
    """Key/value persistence of JSON-encodable arrays.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the store and make sure the table exists.

        Args:
            db_path: Optional custom path to the SQLite database.
        """
        self.db_path = Path(db_path) if db_path else DB_PATH
        self._create_table()

    def _get_connection(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(self.db_path))

    def _create_table(self) -> None:
        """Create the records table if it doesn't exist."""
        try:
            conn = self._get_connection()
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
            conn.close()
            logger.info("Case store ready at %s.", self.db_path)
        except Exception as exc:
            logger.error("Failed to create records table: %s", exc)

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def load(self, key: str) -> list:
        """Read a stored array.

        Args:
            key: Record key, e.g. CASES_KEY.

        Returns:
            The decoded list, or [] if the record is absent or corrupt.
        """
        try:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT value FROM records WHERE key = ?", (key,)
            ).fetchone()
            conn.close()
        except Exception as exc:
            logger.error("Failed to read record %s: %s", key, exc)
            return []

        if row is None:
            return []

        try:
            value = json.loads(row[0])
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("Corrupt record %s, starting empty: %s", key, exc)
            return []

        if not isinstance(value, list):
            logger.warning(
                "Record %s is %s, not a list; starting empty.",
                key,
                type(value).__name__,
            )
            return []
        return value

    def save(self, key: str, items: list) -> bool:
        """Overwrite a record with a complete array.

        Args:
            key: Record key.
            items: JSON-encodable list.

        Returns:
            True if the flush succeeded.
        """
        try:
            payload = json.dumps(items)
            conn = self._get_connection()
            conn.execute(
                """
                INSERT OR REPLACE INTO records (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, payload, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
            conn.close()
            return True
        except Exception as exc:
            logger.error("Failed to save record %s: %s", key, exc)
            return False

    def write_raw(self, key: str, raw: str) -> bool:
        """Store an undecoded string under a key. Used to seed fixtures."""
        try:
            conn = self._get_connection()
            conn.execute(
                "INSERT OR REPLACE INTO records (key, value, updated_at) VALUES (?, ?, ?)",
                (key, raw, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
            conn.close()
            return True
        except Exception as exc:
            logger.error("Failed to write record %s: %s", key, exc)
            return False

    def clear(self) -> bool:
        """Remove every record. Used for testing."""
        try:
            conn = self._get_connection()
            conn.execute("DELETE FROM records")
            conn.commit()
            conn.close()
            logger.info("Case store cleared.")
            return True
        except Exception as exc:
            logger.error("Failed to clear case store: %s", exc)
            return False
