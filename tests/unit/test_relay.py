import asyncio
import json

import pytest
from websockets.asyncio.client import connect

from tweetwall.app.relay import Relay
from tweetwall.client.upstream import ConnectorState
from tweetwall.core.errors import ConfigError, TransportBindError, UpstreamAuthError, UpstreamError
from tweetwall.utils.settings import RelayConfig


def _status(n: int) -> dict:
    return {
        "id": str(n),
        "text": f"tweet {n}",
        "timestamp_ms": str(1_489_000_000_000 + n),
        "user": {"screen_name": f"user{n}", "name": f"User {n}", "profile_image_url": None},
    }


class _GatedStream:
    """Yields each status only after ``release()`` is called for it."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = asyncio.Event()

    def release(self, status: dict) -> None:
        self._queue.put_nowait(status)

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        while not self.closed.is_set():
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self.closed.wait())
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            getter.cancel()
            closer.cancel()
            if getter in done:
                yield getter.result()

    async def aclose(self) -> None:
        self.closed.set()


class _FakeSource:
    def __init__(self, *, recent=None, search_error=None, stream_outcomes=None) -> None:
        self.recent = recent or []
        self.search_error = search_error
        self.stream_outcomes = list(stream_outcomes or [])
        self.closed = False

    async def open_stream(self, track: str):
        outcome = self.stream_outcomes.pop(0) if self.stream_outcomes else _GatedStream()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def search_recent(self, query: str, count: int) -> list[dict]:
        if self.search_error is not None:
            raise self.search_error
        return self.recent[:count]

    async def aclose(self) -> None:
        self.closed = True


class _FakeSubscriber:
    def __init__(self) -> None:
        self.is_open = True
        self.sent: list[str] = []
        self.remote_address = ("fake", 1)

    def send(self, message: str) -> bool:
        if not self.is_open:
            return False
        self.sent.append(message)
        return True

    def texts(self) -> list[str]:
        return [json.loads(m)["data"]["text"] for m in self.sent]


class _FakeHub:
    def __init__(self, start_error: Exception | None = None) -> None:
        self.on_connection = None
        self._subs: list[_FakeSubscriber] = []
        self.start_error = start_error
        self.started = False
        self.closed = False

    @property
    def subscribers(self) -> list[_FakeSubscriber]:
        return [s for s in self._subs if s.is_open]

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def close(self) -> None:
        self.closed = True

    def accept(self) -> _FakeSubscriber:
        subscriber = _FakeSubscriber()
        self._subs.append(subscriber)
        self.on_connection(subscriber)
        return subscriber


async def _eventually(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


def _config(**overrides) -> RelayConfig:
    return RelayConfig(**{"retry_delay_s": 0.01, "backfill_count": 5, **overrides})


@pytest.mark.asyncio
async def test_late_subscriber_gets_replay_then_live_without_duplicates() -> None:
    stream = _GatedStream()
    source = _FakeSource(recent=[_status(3), _status(2), _status(1)], stream_outcomes=[stream])
    hub = _FakeHub()
    relay = Relay(_config(), source=source, hub=hub)

    await relay.start()
    early = hub.accept()
    late_stream_packet = _status(4)
    stream.release(late_stream_packet)
    await _eventually(lambda: len(early.sent) == 4)

    late = hub.accept()
    stream.release(_status(5))
    await _eventually(lambda: len(late.sent) == 5)
    await relay.stop()

    assert early.texts() == ["tweet 3", "tweet 2", "tweet 1", "tweet 4", "tweet 5"]
    assert late.texts() == ["tweet 4", "tweet 3", "tweet 2", "tweet 1", "tweet 5"]
    assert hub.closed is True
    assert source.closed is True


@pytest.mark.asyncio
async def test_replay_is_bounded_by_capacity() -> None:
    stream = _GatedStream()
    relay = Relay(_config(buffer_capacity=2, backfill_count=5), source=_FakeSource(stream_outcomes=[stream]), hub=_FakeHub())
    hub = relay.hub

    await relay.start()
    for n in range(1, 5):
        stream.release(_status(n))
    await _eventually(lambda: relay.connector.forwarded == 4)
    subscriber = hub.accept()
    await relay.stop()

    assert subscriber.texts() == ["tweet 4", "tweet 3"]


@pytest.mark.asyncio
async def test_backfill_failure_does_not_block_live_stream() -> None:
    stream = _GatedStream()
    source = _FakeSource(search_error=UpstreamError("search down"), stream_outcomes=[stream])
    hub = _FakeHub()
    relay = Relay(_config(), source=source, hub=hub)

    await relay.start()
    assert relay.connector.state is ConnectorState.CONNECTED
    subscriber = hub.accept()
    assert subscriber.sent == []

    stream.release(_status(1))
    await _eventually(lambda: len(subscriber.sent) == 1)
    await relay.stop()

    assert subscriber.texts() == ["tweet 1"]


@pytest.mark.asyncio
async def test_backfill_can_be_disabled() -> None:
    source = _FakeSource(recent=[_status(1)])
    relay = Relay(_config(backfill_enabled=False), source=source, hub=_FakeHub())

    await relay.start()
    await relay.stop()

    assert len(relay.buffer) == 0


@pytest.mark.asyncio
async def test_start_waits_through_upstream_retries() -> None:
    source = _FakeSource(stream_outcomes=[UpstreamError("refused"), UpstreamError("refused")])
    relay = Relay(_config(), source=source, hub=_FakeHub())

    await asyncio.wait_for(relay.start(), timeout=2.0)
    assert relay.connector.connect_attempts == 3
    await relay.stop()


@pytest.mark.asyncio
async def test_bind_failure_propagates_and_cleans_up() -> None:
    source = _FakeSource()
    relay = Relay(_config(), source=source, hub=_FakeHub(start_error=TransportBindError("port busy")))

    with pytest.raises(TransportBindError):
        await relay.serve(asyncio.Event())

    assert source.closed is True


@pytest.mark.asyncio
async def test_serve_raises_when_upstream_rejects_credentials() -> None:
    source = _FakeSource(stream_outcomes=[UpstreamAuthError("bad token", status_code=401)])
    relay = Relay(_config(), source=source, hub=_FakeHub())

    with pytest.raises(UpstreamAuthError):
        await asyncio.wait_for(relay.serve(asyncio.Event()), timeout=2.0)


@pytest.mark.asyncio
async def test_serve_stops_gracefully_on_stop_event() -> None:
    stream = _GatedStream()
    source = _FakeSource(stream_outcomes=[stream])
    hub = _FakeHub()
    relay = Relay(_config(), source=source, hub=hub)
    stop_evt = asyncio.Event()

    serving = asyncio.ensure_future(relay.serve(stop_evt))
    await _eventually(lambda: relay.connector.state is ConnectorState.CONNECTED)
    stop_evt.set()
    await asyncio.wait_for(serving, timeout=2.0)

    assert stream.closed.is_set()
    assert hub.closed is True
    assert relay.connector.state is ConnectorState.DISCONNECTED


@pytest.mark.asyncio
async def test_stop_during_startup_retries_exits_cleanly() -> None:
    source = _FakeSource(stream_outcomes=[UpstreamError("refused")] * 100)
    relay = Relay(_config(retry_delay_s=30.0), source=source, hub=_FakeHub())
    stop_evt = asyncio.Event()

    serving = asyncio.ensure_future(relay.serve(stop_evt))
    await _eventually(lambda: relay.connector.connect_attempts == 1)
    stop_evt.set()
    await asyncio.wait_for(serving, timeout=2.0)

    assert source.closed is True


def test_relay_requires_bearer_token_without_injected_source() -> None:
    with pytest.raises(ConfigError):
        Relay(RelayConfig(twitter_bearer_token=None), hub=_FakeHub())


@pytest.mark.asyncio
async def test_end_to_end_over_real_websocket() -> None:
    stream = _GatedStream()
    source = _FakeSource(recent=[_status(2), _status(1)], stream_outcomes=[stream])
    relay = Relay(_config(host="127.0.0.1", port=0), source=source)

    await relay.start()
    try:
        async with connect(f"ws://127.0.0.1:{relay.hub.port}") as ws:
            replayed = [json.loads(await ws.recv()) for _ in range(2)]
            stream.release(_status(3))
            live = json.loads(await asyncio.wait_for(ws.recv(), timeout=2.0))
    finally:
        await relay.stop()

    assert [p["data"]["text"] for p in replayed] == ["tweet 2", "tweet 1"]
    assert live == {
        "event": "tweet",
        "data": {"ts": "1489000000003", "text": "tweet 3", "user": {"screen_name": "user3", "name": "User 3", "profile_image_url": None}},
    }
