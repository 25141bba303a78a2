# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Human-readable event summaries for the console log."""

import json

from ..activity.codes import name_for
from .models import Event

NOT_AVAILABLE = "N/A"
RULE = "═" * 64


def format_meta(meta) -> str:
    """Pretty-print JSON meta; other text is returned unchanged."""
    if meta is None:
        return NOT_AVAILABLE
    try:
        return json.dumps(json.loads(meta), indent=2, ensure_ascii=False)
    except ValueError:
        return meta


def format_event(event: Event) -> str:
    """Multi-line boxed summary of an event."""
    meta_lines = "\n".join(f"║ {line}" for line in format_meta(event.meta).splitlines())
    return (
        f"╔{RULE}\n"
        f"║ EVENT ID: {event.id} | Activity: {name_for(event.activity)} ({event.activity})\n"
        f"║ Timestamp: {event.timestamp}\n"
        f"║ Initiator: {event.initiator_id or NOT_AVAILABLE}\n"
        f"║ Target: {event.target_id or NOT_AVAILABLE}\n"
        f"║ Account: {event.account_id or NOT_AVAILABLE}\n"
        f"║ Metadata:\n"
        f"{meta_lines}\n"
        f"╚{RULE}"
    )
