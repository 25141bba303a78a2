# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Timestamp normalization for Loki.

Loki expects entry timestamps as a decimal string of nanoseconds since the
Unix epoch. NetBird stores event timestamps as text, usually RFC3339 with a
nine digit fraction, sometimes without an offset.
"""

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NANOS_PER_SECOND = 1_000_000_000

# Seconds field followed by a fraction of any length
_FRACTION_RE = re.compile(r"(?<=\d{2}:\d{2}:\d{2})\.(\d+)")


def _parse_rfc3339_nanos(text: str) -> Optional[int]:
    """
    Parse a timestamp with an explicit offset into epoch nanoseconds.

    The fraction is split off before parsing since datetime only keeps
    microseconds.

    Returns:
        Nanoseconds since the epoch, or None if the text is not a valid
        timestamp with an offset
    """
    nanos = 0
    match = _FRACTION_RE.search(text)
    if match:
        nanos = int(match.group(1)[:9].ljust(9, "0"))
        text = text[:match.start()] + text[match.end():]

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return None

    seconds = (parsed - EPOCH) // timedelta(seconds=1)
    return seconds * NANOS_PER_SECOND + nanos


def to_backend_time(text: str) -> str:
    """
    Convert an event timestamp to a Loki timestamp string.

    Tries a strict parse first, then retries with the trailing ``Z`` replaced
    by an explicit ``+00:00`` offset. Unparseable input falls back to the
    current time; this function never raises.

    Args:
        text: Timestamp text as stored in the events table

    Returns:
        Decimal nanoseconds since the epoch
    """
    nanos = _parse_rfc3339_nanos(text)
    if nanos is None:
        nanos = _parse_rfc3339_nanos(text.rstrip("Z") + "+00:00")

    if nanos is None:
        logger.warning(f"Failed to parse timestamp: {text}, using current time")
        nanos = time.time_ns()

    return str(nanos)
