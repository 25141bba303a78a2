# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Data model for events read from the NetBird events table."""

from dataclasses import dataclass
from typing import Optional, Sequence, Any

# Column order used by EventReader queries and Event.from_row
EVENT_COLUMNS = (
    "id",
    "timestamp",
    "activity",
    "initiator_id",
    "target_id",
    "account_id",
    "meta",
)


@dataclass(frozen=True)
class Event:
    """A single row of the ``events`` table. Never mutated after reading."""

    id: int
    timestamp: str
    activity: int
    initiator_id: Optional[str] = None
    target_id: Optional[str] = None
    account_id: Optional[str] = None
    meta: Optional[str] = None

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Event":
        """Build an event from a row in ``EVENT_COLUMNS`` order."""
        return cls(
            id=row[0],
            timestamp=row[1],
            activity=row[2],
            initiator_id=row[3],
            target_id=row[4],
            account_id=row[5],
            meta=row[6],
        )
