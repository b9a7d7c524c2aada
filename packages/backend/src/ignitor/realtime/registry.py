"""Channel registry — which stream handles listen on which channel.

Plain dict of lists, no lock. Everything here runs on one event loop and
none of these methods await, so each call is atomic with respect to the
others. Handles are compared by identity: a handle is only "the same"
subscriber if it is the same object.
"""

from typing import Hashable


class ChannelRegistry:
    """Maps channel name → ordered list of subscribed handles."""

    def __init__(self) -> None:
        self._channels: dict[str, list] = {}

    def subscribe(self, channel: str, handle) -> int:
        """Append `handle` to `channel`. Returns the channel's new size.

        No deduplication — registering the same handle twice delivers
        every event to it twice.
        """
        handles = self._channels.setdefault(channel, [])
        handles.append(handle)
        return len(handles)

    def unsubscribe(self, channel: str, handle) -> bool:
        """Remove `handle` from `channel`. Missing handle → False, no-op."""
        handles = self._channels.get(channel)
        if not handles:
            return False
        for index, existing in enumerate(handles):
            if existing is handle:
                del handles[index]
                break
        else:
            return False
        if not handles:
            del self._channels[channel]
        return True

    def handles(self, channel: str) -> tuple:
        """Snapshot of the channel's handles, safe to iterate across awaits."""
        return tuple(self._channels.get(channel, ()))

    def channels(self) -> list[str]:
        """Names of channels with at least one subscriber."""
        return list(self._channels)

    def count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def total(self) -> int:
        return sum(len(handles) for handles in self._channels.values())

    def __contains__(self, channel: Hashable) -> bool:
        return channel in self._channels
