"""Fixed-capacity, newest-first buffer of recent event packets with live listeners."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterator
from typing import Any

from tweetwall.core.entities import EventPacket
from tweetwall.core.errors import ConfigError
from tweetwall.defaults.config import DEFAULT_BUFFER_CAPACITY

logger = logging.getLogger(__name__)

PacketListener = Callable[[EventPacket], None]


class EventBuffer:
    """Retains the most recent ``capacity`` packets and announces each new one.

    ``push`` is the only writer. Listeners registered with ``subscribe`` are
    called synchronously, once per push, after the packet has been stored, so a
    packet is either visible to ``replay`` or delivered live, never both to the
    same observer.
    """

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ConfigError(f"buffer capacity must be a positive integer, got {capacity!r}")
        self._capacity = capacity
        # appendleft on a bounded deque drops the oldest packet from the tail
        self._packets: deque[EventPacket] = deque(maxlen=capacity)
        self._listeners: list[PacketListener] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._packets)

    def push(self, event: str, data: Any) -> EventPacket:
        packet = EventPacket(event=event, data=data)
        self._packets.appendleft(packet)
        for listener in list(self._listeners):
            try:
                listener(packet)
            except Exception:
                logger.exception("packet listener failed for event %r", event)
        return packet

    def replay(self, visit: PacketListener) -> None:
        for packet in self._snapshot():
            visit(packet)

    def subscribe(self, listener: PacketListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _snapshot(self) -> Iterator[EventPacket]:
        return iter(tuple(self._packets))
