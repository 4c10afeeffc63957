"""Shared fixtures: a scriptable fake SSE endpoint behind a respx router."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import respx

from sselink.client import ANY_EVENT, CONNECTED, CONNECTING, DISCONNECTED, ERROR, EventSource
from sselink.config import EventSourceConfig

STREAM_URL = "https://stream.example.com/events"


class ChunkFeed(httpx.AsyncByteStream):
    """Response body fed chunk by chunk from the test."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()
        self.closed = False

    def push(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def end(self) -> None:
        self._queue.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def aclose(self) -> None:
        self.closed = True


class FakeSSEEndpoint:
    """Answers each GET with the next scripted item, else a fresh open stream."""

    def __init__(self, router: respx.Router, url: str = STREAM_URL) -> None:
        self.feeds: list[ChunkFeed] = []
        self.requests: list[httpx.Request] = []
        self.scripted: list[httpx.Response | Exception] = []
        self.gate: asyncio.Event | None = None
        self.route = router.get(url).mock(side_effect=self._respond)

    def script(self, *items: httpx.Response | Exception) -> None:
        self.scripted.extend(items)

    async def _respond(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.scripted:
            item = self.scripted.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        feed = ChunkFeed()
        self.feeds.append(feed)
        return httpx.Response(
            200, headers={"content-type": "text/event-stream; charset=utf-8"}, stream=feed,
        )

    async def feed(self, index: int) -> ChunkFeed:
        await wait_until(lambda: len(self.feeds) > index)
        return self.feeds[index]


class Recorder:
    """Collects lifecycle notifications and events in delivery order."""

    def __init__(self, source: EventSource) -> None:
        self.calls: list[tuple[str, Any]] = []
        for name in (CONNECTING, CONNECTED, DISCONNECTED):
            source.on(name, functools.partial(self.calls.append, (name, None)))
        source.on(ERROR, lambda exc: self.calls.append((ERROR, exc)))
        source.on(ANY_EVENT, lambda event: self.calls.append(("event", event)))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    @property
    def events(self) -> list[Any]:
        return [payload for name, payload in self.calls if name == "event"]

    @property
    def errors(self) -> list[Exception]:
        return [payload for name, payload in self.calls if name == ERROR]

    def count(self, name: str) -> int:
        return self.names.count(name)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def router():
    return respx.Router(assert_all_called=False)


@pytest.fixture
async def http_client(router):
    async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as client:
        yield client


@pytest.fixture
def endpoint(router):
    return FakeSSEEndpoint(router)


@pytest.fixture
def config():
    return EventSourceConfig(
        initial_reconnect_delay=0.01,
        maximum_reconnect_delay=0.04,
        heartbeat_timeout=1.0,
    )


@pytest.fixture
async def make_source(http_client, config):
    sources: list[EventSource] = []

    def factory(**kwargs: Any) -> EventSource:
        kwargs.setdefault("config", config)
        source = EventSource(STREAM_URL, http_client=http_client, **kwargs)
        sources.append(source)
        return source

    yield factory
    for source in sources:
        await source.close()


@pytest.fixture
def recorder():
    return Recorder


@pytest.fixture
def until():
    return wait_until
