"""Stream handles — one subscriber's open SSE response.

Learn: The broadcaster never touches HTTP objects. It only needs two things
from a subscriber, captured by the StreamHandle protocol:

- `closed`: a cheap liveness check, consulted before writing
- `write()`: push one frame; raising means the subscriber is gone

QueueStream is the handle used by HTTP endpoints. Frames go into a bounded
asyncio.Queue which the response body (event_stream) drains. A full queue
means the client stopped reading — the write fails and the broadcaster
drops the handle, so one stalled client can't grow memory forever.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, runtime_checkable

from starlette.requests import Request
from starlette.responses import StreamingResponse

from ignitor.realtime.events import format_comment


class StreamClosedError(Exception):
    """Raised when writing to a handle whose subscriber went away."""


@runtime_checkable
class StreamHandle(Protocol):
    @property
    def closed(self) -> bool: ...

    async def write(self, data: str) -> None: ...


class QueueStream:
    """Queue-backed stream handle drained by an SSE response."""

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def write(self, data: str) -> None:
        if self._closed:
            raise StreamClosedError("stream is closed")
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self._closed = True
            raise StreamClosedError("subscriber is not reading (queue full)")

    async def read(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next frame, or None if `timeout` elapses first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


async def event_stream(
    request: Request,
    handle: QueueStream,
    *,
    heartbeat: float = 15.0,
    on_close: Optional[Callable[[], Awaitable[None]]] = None,
) -> AsyncIterator[str]:
    """Response body for one SSE subscriber.

    Ends when the client disconnects or the handle is closed. Either way
    the handle is closed and `on_close` runs, so the subscriber is
    unregistered the moment the connection goes away.
    """
    try:
        yield format_comment("connected")
        while not handle.closed:
            frame = await handle.read(timeout=heartbeat)
            if frame is not None:
                yield frame
                continue
            if await request.is_disconnected():
                break
            yield format_comment("ping")
    finally:
        handle.close()
        if on_close is not None:
            await on_close()


def sse_response(body: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
