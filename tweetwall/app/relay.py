"""Wires buffer, transport, fanout, backfill and upstream into one relay."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import Any

from tweetwall.client.backfill import backfill_buffer
from tweetwall.client.fanout import FanoutPublisher
from tweetwall.client.twitter import TwitterClient, UpstreamSource
from tweetwall.client.upstream import UpstreamConnector
from tweetwall.core.entities import EventPacket
from tweetwall.core.errors import ConfigError
from tweetwall.core.event_buffer import EventBuffer
from tweetwall.infra.websocket import Subscriber, WebSocketHub
from tweetwall.protocol.wire import encode_packet
from tweetwall.utils.settings import RelayConfig

logger = logging.getLogger(__name__)


class Relay:
    """Upstream stream in, bounded history plus live fanout out."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        source: UpstreamSource | None = None,
        hub: Any | None = None,
        buffer: EventBuffer | None = None,
    ) -> None:
        self.config = config.validate()
        self.buffer = buffer or EventBuffer(config.buffer_capacity)
        self.hub = hub or WebSocketHub(config.host, config.port)
        self.fanout = FanoutPublisher(self.hub)
        if source is None:
            if not config.twitter_bearer_token:
                raise ConfigError("TWITTER_BEARER_TOKEN is required")
            source = TwitterClient(
                config.twitter_bearer_token,
                base_url=config.twitter_api_url,
                timeout=config.http_timeout_s,
            )
        self.source = source
        self.connector = UpstreamConnector(
            source, self.buffer, config.track, retry_delay=config.retry_delay_s
        )
        self._stopped = False

    def _on_subscriber(self, subscriber: Subscriber) -> None:
        replayed = 0

        def _send(packet: EventPacket) -> None:
            nonlocal replayed
            if subscriber.send(encode_packet(packet)):
                replayed += 1

        self.buffer.replay(_send)
        logger.info("replayed %d packet(s) to %s", replayed, subscriber.remote_address)

    async def start(self, *, wait_connected: bool = True) -> None:
        await self.hub.start()
        self.fanout.attach(self.buffer)
        self.hub.on_connection = self._on_subscriber

        if self.config.backfill_enabled:
            await backfill_buffer(
                self.source, self.buffer, self.config.track, self.config.effective_backfill_count
            )

        self.connector.start()
        if wait_connected:
            await self.connector.wait_connected()
            logger.info("relay ready, tracking %r", self.config.track)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.info("stopping relay")
        await self.connector.stop()
        self.fanout.detach()
        await self.hub.close()
        await self.source.aclose()

    async def _until_stopped(self, work: Awaitable[Any], stop_event: asyncio.Event) -> bool:
        fut = asyncio.ensure_future(work)
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            done, _ = await asyncio.wait({fut, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
        if fut in done:
            fut.result()
            return True
        if fut is not self.connector.task:
            fut.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await fut
        return False

    async def serve(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set or the upstream fails fatally."""
        try:
            if await self._until_stopped(self.start(), stop_event):
                task = self.connector.task
                if task is not None:
                    await self._until_stopped(task, stop_event)
        finally:
            await self.stop()
