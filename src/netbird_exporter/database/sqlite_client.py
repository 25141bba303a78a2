# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
SQLite client for the NetBird events database.

The events database belongs to the NetBird management server. The exporter
only ever reads it, so every connection is opened in read-only URI mode.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..errors import SourceOpenFailure

logger = logging.getLogger(__name__)

EVENTS_TABLE = "events"


class SQLiteClient:
    """Opens short-lived read-only connections to the events database."""

    def __init__(self, db_path: str, timeout: float = 5.0):
        """
        Initialize SQLite client.

        Args:
            db_path: Path to the NetBird events.db file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout

    def _uri(self) -> str:
        return f"{self.db_path.resolve().as_uri()}?mode=ro"

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a read-only connection, closed on exit.

        Raises:
            sqlite3.Error: If the database cannot be opened
        """
        conn = sqlite3.connect(self._uri(), uri=True, timeout=self.timeout)
        try:
            yield conn
        finally:
            conn.close()

    def verify(self) -> None:
        """
        Check that the database opens and has an events table.

        Raises:
            SourceOpenFailure: If the file is missing, unreadable or has no
                events table
        """
        logger.info(f"Checking for database at: {self.db_path}")

        if not self.db_path.exists():
            raise SourceOpenFailure(f"Events database not found: {self.db_path}")

        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                    (EVENTS_TABLE,),
                ).fetchone()
        except sqlite3.Error as e:
            raise SourceOpenFailure(f"Failed to open database {self.db_path}: {e}") from e

        if row is None:
            raise SourceOpenFailure(f"No '{EVENTS_TABLE}' table in {self.db_path}")
