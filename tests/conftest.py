# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Shared fixtures: a NetBird-shaped events database."""

import sqlite3
from pathlib import Path
from typing import Iterable, Tuple

import pytest

# Schema of the events table written by the NetBird management server
EVENTS_SCHEMA = """
CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp DATETIME,
    activity INTEGER,
    initiator_id TEXT,
    target_id TEXT,
    account_id TEXT,
    meta TEXT
)
"""


def create_events_db(path: Path) -> Path:
    conn = sqlite3.connect(path)
    try:
        conn.execute(EVENTS_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


def insert_events(path: Path, rows: Iterable[Tuple]) -> None:
    """Insert (timestamp, activity, initiator_id, target_id, account_id, meta) rows."""
    conn = sqlite3.connect(path)
    try:
        conn.executemany(
            "INSERT INTO events (timestamp, activity, initiator_id, target_id, account_id, meta) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            list(rows),
        )
        conn.commit()
    finally:
        conn.close()


def sample_rows(count: int = 5):
    """Rows spread over two accounts and a few activities."""
    activities = [0, 57, 0, 2, 57]
    accounts = ["acc-1", "acc-1", "acc-2", None, "acc-1"]
    return [
        (
            f"2024-01-15T10:30:0{i}.123456789Z",
            activities[i % len(activities)],
            f"user-{i}",
            f"peer-{i}",
            accounts[i % len(accounts)],
            '{"name": "peer-%d"}' % i,
        )
        for i in range(count)
    ]


@pytest.fixture
def events_db(tmp_path) -> Path:
    """Empty events database."""
    return create_events_db(tmp_path / "events.db")
