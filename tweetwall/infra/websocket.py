"""WebSocket server transport for wall subscribers."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from tweetwall.core.errors import TransportBindError

logger = logging.getLogger(__name__)


class Subscriber:
    """One connected wall client."""

    def __init__(self, connection: ServerConnection) -> None:
        self._connection = connection

    @property
    def remote_address(self) -> Any:
        return getattr(self._connection, "remote_address", None)

    @property
    def is_open(self) -> bool:
        return getattr(self._connection, "state", None) == State.OPEN

    def send(self, message: str) -> bool:
        """Write ``message`` without waiting for the peer. No-op unless open."""
        if not self.is_open:
            return False
        # broadcast() writes synchronously, so packets reach the socket in call order
        broadcast((self._connection,), message)
        return True


class WebSocketHub:
    """Accepts subscriber connections and tracks the live set."""

    def __init__(self, host: str | None = None, port: int = 1235) -> None:
        self.host = host
        self._port = port
        self._server: Server | None = None
        self._subscribers: dict[ServerConnection, Subscriber] = {}
        self.on_connection: Callable[[Subscriber], None] | None = None

    @property
    def port(self) -> int:
        if self._server is not None:
            for sock in self._server.sockets:
                return int(sock.getsockname()[1])
        return self._port

    @property
    def subscribers(self) -> list[Subscriber]:
        return [sub for sub in self._subscribers.values() if sub.is_open]

    async def start(self) -> None:
        if self._server is not None:
            return
        try:
            self._server = await serve(self._handle, self.host, self._port)
        except OSError as exc:
            raise TransportBindError(f"cannot listen on {self.host or '*'}:{self._port}: {exc}") from exc
        logger.info("websocket server listening on %s:%s", self.host or "*", self.port)

    async def close(self) -> None:
        server = self._server
        if server is None:
            return
        self._server = None
        server.close()
        await server.wait_closed()
        self._subscribers.clear()
        logger.info("websocket server closed")

    async def _handle(self, connection: ServerConnection) -> None:
        subscriber = Subscriber(connection)
        self._subscribers[connection] = subscriber
        logger.info("subscriber connected from %s", subscriber.remote_address)
        try:
            # No await between joining the live set and the connect callback.
            if self.on_connection is not None:
                self.on_connection(subscriber)
            with contextlib.suppress(ConnectionClosed):
                async for _ in connection:
                    pass
        except Exception:
            logger.exception("subscriber handler failed for %s", subscriber.remote_address)
        finally:
            self._subscribers.pop(connection, None)
            logger.info("subscriber disconnected from %s", subscriber.remote_address)
