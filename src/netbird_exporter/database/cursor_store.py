# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""In-memory cursor over the events table."""

import logging

from .event_reader import EventReader

logger = logging.getLogger(__name__)


class CursorStore:
    """
    Tracks the id of the last event delivered to Loki.

    The cursor starts at the current maximum id so a fresh process does not
    replay history, and only moves forward. Only the pump advances it, after
    a batch has been fully delivered.
    """

    def __init__(self, start: int = 0):
        self._current = start

    def initial(self, reader: EventReader) -> int:
        """
        Initialize the cursor from the source's maximum id.

        Raises:
            SourceOpenFailure: If the maximum id cannot be read
        """
        self._current = reader.get_max_id()
        logger.info(f"Starting from event ID: {self._current}")
        return self._current

    def current(self) -> int:
        return self._current

    def advance_to(self, event_id: int) -> bool:
        """
        Move the cursor forward.

        Returns:
            True if the cursor moved, False if ``event_id`` was not ahead of it
        """
        if event_id <= self._current:
            return False
        self._current = event_id
        return True
