"""Broadcast events and their Server-Sent-Events wire framing.

Every event goes over the wire as:

    event: <event_type>
    data: <compact JSON payload>
    <blank line>

which any EventSource client consumes unmodified.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi.encoders import jsonable_encoder

# Every `created` event is also sent here
WILDCARD_CHANNEL = "*"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def encode_payload(payload: Any) -> str:
    """JSON-encode a payload compactly (datetimes, UUIDs, models allowed)."""
    return json.dumps(
        jsonable_encoder(payload),
        separators=(",", ":"),
        ensure_ascii=False,
    )


def format_sse(event_type: str, payload: Any) -> str:
    return f"event: {event_type}\ndata: {encode_payload(payload)}\n\n"


def format_comment(text: str) -> str:
    """SSE comment line — ignored by clients, keeps proxies from timing out."""
    return f": {text}\n\n"


@dataclass(frozen=True)
class Event:
    """One broadcast, built at send time and never stored."""

    event_type: str
    payload: Any
    channel: str
    timestamp: str = field(default_factory=_utc_iso)

    def encode(self) -> str:
        return format_sse(self.event_type, self.payload)
