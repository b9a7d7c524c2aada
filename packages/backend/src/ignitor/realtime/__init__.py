"""Real-time infrastructure — in-process Server-Sent Events.

Learn: Events flow in one direction:
1. Services → Broadcaster.broadcast(channel, type, payload)
2. Broadcaster → every QueueStream registered on that channel
3. QueueStream → event_stream() → StreamingResponse → browser EventSource
"""

from ignitor.realtime.broadcaster import Broadcaster
from ignitor.realtime.events import WILDCARD_CHANNEL, Event, format_sse
from ignitor.realtime.registry import ChannelRegistry
from ignitor.realtime.stream import (
    QueueStream,
    StreamClosedError,
    StreamHandle,
    event_stream,
    sse_response,
)

__all__ = [
    "Broadcaster",
    "ChannelRegistry",
    "Event",
    "QueueStream",
    "StreamClosedError",
    "StreamHandle",
    "WILDCARD_CHANNEL",
    "event_stream",
    "format_sse",
    "sse_response",
]
