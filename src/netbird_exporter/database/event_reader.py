# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Event reader for the NetBird events table.

Supports incremental reading: callers pass the last delivered id and get the
next batch of rows in ascending id order.
"""

import logging
import sqlite3
from typing import List

from ..errors import SourceOpenFailure, SourceReadFailure
from ..processing.models import EVENT_COLUMNS, Event
from .sqlite_client import SQLiteClient, EVENTS_TABLE

logger = logging.getLogger(__name__)


class EventReader:
    """Reads events from the NetBird SQLite database."""

    def __init__(self, client: SQLiteClient):
        """
        Initialize event reader.

        Args:
            client: SQLiteClient for the events database
        """
        self.client = client

    def get_max_id(self) -> int:
        """
        Get the highest event id in the table.

        Returns:
            Maximum id, or 0 if the table is empty

        Raises:
            SourceOpenFailure: If the query fails
        """
        try:
            with self.client.get_connection() as conn:
                row = conn.execute(f"SELECT MAX(id) FROM {EVENTS_TABLE}").fetchone()
        except sqlite3.Error as e:
            raise SourceOpenFailure(f"Failed to read max event id: {e}") from e

        if row is None or row[0] is None:
            return 0
        return row[0]

    def count_events(self) -> int:
        """Total number of rows in the events table."""
        try:
            with self.client.get_connection() as conn:
                row = conn.execute(f"SELECT COUNT(*) FROM {EVENTS_TABLE}").fetchone()
        except sqlite3.Error as e:
            raise SourceReadFailure(f"Failed to count events: {e}") from e
        return row[0] if row else 0

    def get_events_since(self, last_id: int, limit: int = 100) -> List[Event]:
        """
        Get events with an id greater than ``last_id``.

        Args:
            last_id: Last delivered event id (exclusive)
            limit: Maximum number of events to return

        Returns:
            Events in ascending id order

        Raises:
            SourceReadFailure: If the query fails
        """
        columns = ", ".join(EVENT_COLUMNS)
        try:
            with self.client.get_connection() as conn:
                cursor = conn.execute(
                    f"""
                    SELECT {columns}
                    FROM {EVENTS_TABLE}
                    WHERE id > ?
                    ORDER BY id ASC
                    LIMIT ?
                    """,
                    (last_id, limit),
                )
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise SourceReadFailure(f"Failed to read events from database: {e}") from e

        return [Event.from_row(row) for row in rows]
