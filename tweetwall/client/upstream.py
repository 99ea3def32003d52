"""Keeps the live upstream stream connected and feeds it into the buffer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from tweetwall.client.twitter import UpstreamSource, UpstreamStream
from tweetwall.core.errors import UpstreamAuthError, UpstreamError
from tweetwall.core.event_buffer import EventBuffer
from tweetwall.core.events import ConnectionEvent
from tweetwall.defaults.config import DEFAULT_EVENT_TYPE, DEFAULT_RETRY_DELAY_S
from tweetwall.utils.tweets import tweet_payload

logger = logging.getLogger(__name__)

STOP_TIMEOUT_S = 10.0


class ConnectorState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class UpstreamConnector:
    """Disconnected -> Connecting -> Connected, and back on any failure.

    Connect failures and mid-stream failures are handled the same way: wait a
    fixed ``retry_delay`` and connect again, forever. Only rejected
    credentials stop the loop.
    """

    def __init__(
        self,
        source: UpstreamSource,
        buffer: EventBuffer,
        track: str,
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY_S,
        event: str = DEFAULT_EVENT_TYPE,
        transform: Callable[[dict[str, Any]], Any] = tweet_payload,
    ) -> None:
        self._source = source
        self._buffer = buffer
        self.track = track
        self.retry_delay = retry_delay
        self._event = event
        self._transform = transform

        self._state = ConnectorState.DISCONNECTED
        self._stream: UpstreamStream | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._connected_once = asyncio.Event()

        self.connect_attempts = 0
        self.forwarded = 0
        self.on_state_change: Callable[[ConnectionEvent], Awaitable[None]] | None = None

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    async def _set_state(self, state: ConnectorState, reason: Exception | None = None) -> None:
        if state is self._state:
            return
        self._state = state
        if state is ConnectorState.CONNECTED:
            self._connected_once.set()
        logger.info("upstream %s", state.value)
        if self.on_state_change is not None:
            try:
                await self.on_state_change(ConnectionEvent(status=state.value, reason=reason))
            except Exception:
                logger.exception("state change callback failed")

    async def connect(self) -> UpstreamStream:
        """Make one connection attempt."""
        self.connect_attempts += 1
        await self._set_state(ConnectorState.CONNECTING)
        try:
            stream = await self._source.open_stream(self.track)
        except Exception as exc:
            await self._set_state(ConnectorState.DISCONNECTED, exc)
            raise
        self._stream = stream
        await self._set_state(ConnectorState.CONNECTED)
        return stream

    async def run(self) -> None:
        while not self._stopping.is_set():
            try:
                stream = await self.connect()
            except UpstreamAuthError:
                logger.error("upstream rejected credentials, not retrying")
                raise
            except UpstreamError as exc:
                logger.warning("upstream connect failed: %s; retrying in %.1fs", exc, self.retry_delay)
                await self._wait_retry()
                continue
            except Exception:
                logger.exception("upstream connect failed unexpectedly; retrying in %.1fs", self.retry_delay)
                await self._wait_retry()
                continue

            reason: Exception | None = None
            try:
                await self._forward(stream)
            except UpstreamError as exc:
                reason = exc
                logger.error("upstream stream error: %s", exc)
            except Exception as exc:
                reason = exc
                logger.exception("upstream stream failed unexpectedly")
            finally:
                self._stream = None
                with contextlib.suppress(Exception):
                    await stream.aclose()

            if reason is None and not self._stopping.is_set():
                logger.warning("upstream stream ended unexpectedly")
            await self._set_state(ConnectorState.DISCONNECTED, reason)
            if not self._stopping.is_set():
                logger.info("reconnecting in %.1fs", self.retry_delay)
                await self._wait_retry()

    async def _forward(self, stream: UpstreamStream) -> None:
        async for status in stream:
            if self._state is not ConnectorState.CONNECTED or self._stopping.is_set():
                return
            try:
                data = self._transform(status)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("skipping upstream status: %s", exc)
                continue
            self._buffer.push(self._event, data)
            self.forwarded += 1

    async def _wait_retry(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=self.retry_delay)

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._stopping.clear()
            self._task = asyncio.create_task(self.run(), name="tweetwall-upstream")
        return self._task

    async def wait_connected(self, timeout: float | None = None) -> None:
        """Return once connected for the first time; re-raise a fatal run error."""
        if self._task is None:
            raise RuntimeError("connector has not been started")
        if self._connected_once.is_set():
            return
        waiter = asyncio.ensure_future(self._connected_once.wait())
        try:
            done, _ = await asyncio.wait(
                {waiter, self._task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
        if self._connected_once.is_set():
            return
        if self._task in done:
            self._task.result()
            raise UpstreamError("connector stopped before connecting")
        raise asyncio.TimeoutError("timed out waiting for the upstream connection")

    async def stop(self) -> None:
        self._stopping.set()
        stream = self._stream
        if stream is not None:
            with contextlib.suppress(Exception):
                await stream.aclose()
        task = self._task
        if task is not None and not task.done():
            try:
                if stream is None:
                    # Nothing in flight: abandon a pending connect attempt.
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
                else:
                    await asyncio.wait_for(asyncio.shield(task), timeout=STOP_TIMEOUT_S)
            except asyncio.TimeoutError:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            except Exception:
                logger.exception("upstream connector failed while stopping")
        await self._set_state(ConnectorState.DISCONNECTED)
