"""Broadcaster — channel-keyed fan-out of events to SSE subscribers.

Learn: Delivery is best-effort and at-most-once. A subscriber that connects
after a broadcast never sees it; there is no replay.

Dead subscribers are detected two ways during a broadcast:
1. `handle.closed` is already set → skipped without writing (cheap)
2. `handle.write()` raises → counted as dead after the attempt

Both kinds are removed only after the whole pass, by identity. The pass
iterates a snapshot, so a handle the sweeper removes while we're awaiting
a write is simply a no-op when we try to remove it again.

Clients that vanish without anyone broadcasting to them are reclaimed by
the periodic sweep (start()/stop(), driven by the app lifespan).

State is process-local: a client connected to one instance never receives
broadcasts triggered on another.
"""

import asyncio
from typing import Any, Iterable, Optional

import structlog

from ignitor.realtime.events import Event
from ignitor.realtime.registry import ChannelRegistry


class Broadcaster:
    """Pushes framed events to every live handle subscribed to a channel."""

    def __init__(
        self,
        registry: Optional[ChannelRegistry] = None,
        logger=None,
    ):
        self.registry = registry if registry is not None else ChannelRegistry()
        self.logger = logger or structlog.get_logger("ignitor.realtime")
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    # ─── Subscriptions ──────────────────────────────────

    def subscribe(self, channel: str, handle) -> None:
        size = self.registry.subscribe(channel, handle)
        self.logger.info("sse.client_added", channel=channel, channel_clients=size)

    def unsubscribe(self, channel: str, handle) -> bool:
        removed = self.registry.unsubscribe(channel, handle)
        if removed:
            self.logger.info(
                "sse.client_removed",
                channel=channel,
                remaining_clients=self.registry.count(channel),
            )
        return removed

    # ─── Delivery ───────────────────────────────────────

    async def broadcast(self, channel: str, event_type: str, payload: Any) -> int:
        """Send one event to `channel`. Returns how many handles got it."""
        handles = self.registry.handles(channel)
        if not handles:
            return 0

        event = Event(event_type=event_type, payload=payload, channel=channel)
        frame = event.encode()

        dead = []
        delivered = 0
        for handle in handles:
            if handle.closed:
                dead.append(handle)
                continue
            try:
                await handle.write(frame)
            except Exception as e:
                self.logger.warning(
                    "sse.write_failed", channel=channel, error=str(e)
                )
                dead.append(handle)
                continue
            delivered += 1

        for handle in dead:
            self.registry.unsubscribe(channel, handle)
        if dead:
            self.logger.info(
                "sse.dead_clients_removed", channel=channel, removed=len(dead)
            )
        return delivered

    async def broadcast_many(
        self, channels: Iterable[str], event_type: str, payload: Any
    ) -> int:
        """Broadcast to each channel independently.

        A failure on one channel is logged and never stops the others.
        """
        delivered = 0
        for channel in channels:
            try:
                delivered += await self.broadcast(channel, event_type, payload)
            except Exception:
                self.logger.exception(
                    "sse.broadcast_failed", channel=channel, event_type=event_type
                )
        return delivered

    # ─── Sweep ──────────────────────────────────────────

    def sweep(self) -> int:
        """Remove every closed handle from every channel. Idempotent."""
        removed = 0
        emptied = 0
        for channel in self.registry.channels():
            for handle in self.registry.handles(channel):
                if handle.closed and self.registry.unsubscribe(channel, handle):
                    removed += 1
            if channel not in self.registry:
                emptied += 1
        if removed:
            self.logger.info(
                "sse.sweep", removed=removed, channels_deleted=emptied
            )
        return removed

    async def run_loop(self, interval: float) -> None:
        """Sweep every `interval` seconds until stop() is called."""
        self._running = True
        while self._running:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                self.logger.exception("sse.sweep_failed")

    def start(self, interval: float = 60.0) -> asyncio.Task:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self.run_loop(interval))
            self.logger.info("sse.sweeper_started", interval=interval)
        return self._sweep_task

    async def stop(self) -> None:
        self._running = False
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ─── Observability ──────────────────────────────────

    def channel_count(self, channel: str) -> int:
        return self.registry.count(channel)

    def active_channels(self) -> list[str]:
        return self.registry.channels()

    def total_clients(self) -> int:
        return self.registry.total()

    def stats(self) -> dict[str, Any]:
        return {
            "channels": len(self.registry.channels()),
            "clients": self.registry.total(),
        }
