# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Stream grouping for Loki.

Partitions a batch of events into Loki streams keyed by label set. The label
set of an event depends only on its account and activity code, so all events
of one account and activity land in the same stream, in batch order.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from ..activity.codes import name_for
from .models import Event
from .timestamps import to_backend_time

DEFAULT_JOB = "netbird-events"
UNKNOWN_ACCOUNT = "unknown"


@dataclass
class Stream:
    """A Loki stream: labels plus ordered (timestamp_ns, line) entries."""

    labels: Dict[str, str]
    values: List[Tuple[str, str]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, object]:
        """Loki push API representation of this stream."""
        return {
            "stream": dict(self.labels),
            "values": [[ts, line] for ts, line in self.values],
        }


def label_key(event: Event) -> Tuple[str, int]:
    """Grouping key of an event: (account label value, activity code)."""
    return (event.account_id or UNKNOWN_ACCOUNT, event.activity)


def build_labels(event: Event, job: str = DEFAULT_JOB) -> Dict[str, str]:
    """Loki labels for an event."""
    return {
        "job": job,
        "account_id": event.account_id or UNKNOWN_ACCOUNT,
        "activity": name_for(event.activity),
        "activity_code": str(event.activity),
    }


def build_line(event: Event) -> str:
    """
    Serialize an event into the log line stored by Loki.

    Keys are sorted and separators compact so the same event always yields
    the same line. ``meta`` is passed through as raw text whether or not it
    is valid JSON.
    """
    data = {
        "event_id": event.id,
        "timestamp": event.timestamp,
        "activity": name_for(event.activity),
        "activity_code": event.activity,
        "initiator_id": event.initiator_id or "",
        "target_id": event.target_id or "",
        "account_id": event.account_id or "",
        "meta": event.meta or "",
    }
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def group(events: Sequence[Event], job: str = DEFAULT_JOB) -> List[Stream]:
    """
    Group a batch of events into Loki streams.

    Pure function: no I/O, same input gives the same output.

    Args:
        events: Batch in ascending id order
        job: Value of the ``job`` label

    Returns:
        Streams in order of first appearance of their label set; entries
        within a stream keep batch order
    """
    streams: Dict[Tuple[str, int], Stream] = {}

    for event in events:
        key = label_key(event)
        stream = streams.get(key)
        if stream is None:
            stream = Stream(labels=build_labels(event, job))
            streams[key] = stream
        stream.values.append((to_backend_time(event.timestamp), build_line(event)))

    return list(streams.values())
