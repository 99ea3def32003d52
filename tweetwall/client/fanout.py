"""Broadcasts each newly buffered packet to every open subscriber."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from tweetwall.core.entities import EventPacket
from tweetwall.core.event_buffer import EventBuffer
from tweetwall.protocol.wire import encode_packet

logger = logging.getLogger(__name__)


class SubscriberLike(Protocol):
    @property
    def is_open(self) -> bool: ...

    def send(self, message: str) -> bool: ...


class HubLike(Protocol):
    @property
    def subscribers(self) -> Iterable[SubscriberLike]: ...


class FanoutPublisher:
    def __init__(self, hub: HubLike) -> None:
        self._hub = hub
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self, buffer: EventBuffer) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = buffer.subscribe(self.publish)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def publish(self, packet: EventPacket) -> int:
        message = encode_packet(packet)
        delivered = 0
        for subscriber in list(self._hub.subscribers):
            if subscriber.is_open and subscriber.send(message):
                delivered += 1
        logger.debug("broadcast %s packet to %d subscriber(s)", packet.event, delivered)
        return delivered
