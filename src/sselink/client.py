"""EventSource: a reconnecting Server-Sent Events subscription.

Opens a streaming GET with httpx, parses the body incrementally, and
dispatches lifecycle and event notifications to registered handlers. Any
termination (stream end, transport failure, bad response, heartbeat expiry)
leads to ``disconnected`` and a reconnect after an exponential backoff delay,
resuming with ``Last-Event-ID`` when the server supplied ids.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import structlog

from .config import EventSourceConfig
from .errors import HeartbeatTimeoutError, ProtocolError, SSELinkError, TransportError
from .monitor.backoff import ExponentialBackoff
from .monitor.heartbeat import HeartbeatMonitor
from .protocol.assembler import Event, EventAssembler
from .protocol.line_parser import LineParser
from .state_machine import ReadyState, transition

log = structlog.get_logger()

# Lifecycle notification names
CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTED = "disconnected"
ERROR = "error"
# Handlers registered under this name receive every Event regardless of name
ANY_EVENT = "*"

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

# httpx failures reported as TransportError. InvalidURL and StreamError do not
# derive from HTTPError.
_HTTPX_FAILURES = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError)

Handler = Callable[..., Any]


class EventSource:
    """Keeps one SSE subscription alive until closed.

    Example:
        source = EventSource("https://example.com/stream")
        source.on("message", print)
        async with source:
            await asyncio.sleep(60)
    """

    def __init__(
        self,
        url: str,
        config: EventSourceConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
        last_event_id: str | None = None,
    ) -> None:
        if config is None:
            config = EventSourceConfig()
        self._url = url
        self.config = config
        self.headers = dict(headers or {})

        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(config.connect_timeout, read=None),
                follow_redirects=True,
                http2=config.http2,
            )
        self._http_client = http_client

        self._ready_state = ReadyState.DISCONNECTED
        self._last_event_id = last_event_id
        self._handlers: dict[str, list[Handler]] = {}

        self.backoff = ExponentialBackoff(
            initial=config.initial_reconnect_delay,
            maximum=config.maximum_reconnect_delay,
            factor=config.backoff_factor,
        )
        self._parser = LineParser(max_line_bytes=config.max_line_bytes)
        self._assembler = EventAssembler()
        self._heartbeat = HeartbeatMonitor(config.heartbeat_timeout, self._abort)

        self._attempt_task: asyncio.Task[None] | None = None
        self._abort_error: SSELinkError | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._closing_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def last_event_id(self) -> str | None:
        """Id of the most recent record that carried one; sent on reconnect."""
        return self._last_event_id

    @property
    def closed(self) -> bool:
        return self._closed

    # -- handler registry ---------------------------------------------------

    def on(self, name: str, handler: Handler) -> None:
        """Register a handler for a lifecycle notification or event name.

        Handlers may be plain callables or coroutine functions. Lifecycle
        handlers take no arguments (``error`` handlers take the exception);
        event handlers take the Event.

        Lifecycle and event names share one namespace: a server record named
        ``error`` or ``connected`` also reaches the handlers registered under
        that name, with the Event as argument. Handlers that must tell them
        apart should check ``isinstance(arg, Event)``.
        """
        self._handlers.setdefault(name, []).append(handler)

    def off(self, name: str, handler: Handler) -> None:
        """Remove a previously registered handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def _emit(self, name: str, *args: Any) -> None:
        for handler in list(self._handlers.get(name, ())):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("sse_handler_error", url=self._url, notification=name)

    async def _dispatch(self, event: Event) -> None:
        await self._emit(event.name, event)
        if event.name != ANY_EVENT:
            await self._emit(ANY_EVENT, event)

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Start the reconnect loop in the background. Idempotent."""
        if self._closed:
            raise RuntimeError("EventSource is closed")
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.get_running_loop().create_task(self.run())
        return self._run_task

    async def run(self) -> None:
        """Connect, and after every disconnection wait for the backoff delay and reconnect.

        Runs until ``close()`` is called or the task is cancelled.
        """
        while not self._closed:
            await self.connect()
            if self._closed:
                break
            delay = self.backoff.next_delay()
            log.info(
                "sse_reconnect_scheduled",
                url=self._url,
                delay=delay,
                attempt=self.backoff.attempt,
                last_event_id=self._last_event_id,
            )
            await asyncio.sleep(delay)

    async def close(self) -> None:
        """Stop reconnecting, abort the current attempt and release the HTTP client.

        May be called from a handler. The handler's own task is then among the
        ones being cancelled, so the remaining teardown finishes in the
        background instead of being awaited here.
        """
        if self._closed:
            return
        self._closed = True
        self._heartbeat.stop()

        tasks = [
            task for task in (self._run_task, self._attempt_task)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()

        if asyncio.current_task() in tasks:
            self._closing_task = asyncio.get_running_loop().create_task(
                self._finish_close(tasks)
            )
            return
        await self._finish_close(tasks)

    async def _finish_close(self, tasks: list[asyncio.Task[None]]) -> None:
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise

        if self._owns_client:
            await self._http_client.aclose()
        log.info("sse_closed", url=self._url, last_event_id=self._last_event_id)

    async def __aenter__(self) -> "EventSource":
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # -- connection attempt ---------------------------------------------------

    def _set_state(self, target: ReadyState, trigger: str = "") -> None:
        self._ready_state = transition(self._ready_state, target, self._url, trigger)

    def _request_headers(self) -> httpx.Headers:
        # httpx.Headers merges case-insensitively, so a caller's
        # "last-event-id" is replaced rather than duplicated.
        headers = httpx.Headers({
            "Accept": EVENT_STREAM_CONTENT_TYPE,
            "Cache-Control": "no-cache",
        })
        headers.update(self.headers)
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return headers

    async def connect(self) -> None:
        """Run one connection attempt until the stream terminates.

        A no-op while an attempt is already connecting or connected. Failures
        are reported through ``error`` and never raised.
        """
        if self._ready_state in (ReadyState.CONNECTING, ReadyState.CONNECTED):
            log.debug("sse_connect_ignored", url=self._url, state=self._ready_state.value)
            return

        self._set_state(ReadyState.CONNECTING, "connect")
        log.info("sse_connecting", url=self._url, last_event_id=self._last_event_id)
        await self._emit(CONNECTING)

        self._abort_error = None
        error: SSELinkError | None = None
        self._attempt_task = asyncio.get_running_loop().create_task(
            self._stream(self._request_headers())
        )
        try:
            await self._attempt_task
        except asyncio.CancelledError:
            # Only the attempt was cancelled (watchdog or close()): tear down
            # normally. Cancellation of the caller itself propagates.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            error = self._abort_error
        except SSELinkError as exc:
            error = exc
        finally:
            self._attempt_task = None
            self._heartbeat.stop()
            self._parser.reset()
            self._assembler.reset()
            trigger = type(error).__name__ if error is not None else "stream_end"
            self._set_state(ReadyState.DISCONNECTED, trigger)

        if error is not None:
            log.warning(
                "sse_connection_error",
                url=self._url,
                error=str(error),
                error_type=type(error).__name__,
            )
            await self._emit(ERROR, error)
        log.info("sse_disconnected", url=self._url, last_event_id=self._last_event_id)
        await self._emit(DISCONNECTED)

    def _abort(self, error: HeartbeatTimeoutError) -> None:
        """Heartbeat expiry: cancel the in-flight stream so teardown runs once, in connect()."""
        task = self._attempt_task
        if task is None or task.done():
            return
        self._abort_error = error
        task.cancel()

    async def _stream(self, headers: httpx.Headers) -> None:
        try:
            async with self._http_client.stream("GET", self._url, headers=headers) as response:
                self._check_response(response)

                self.backoff.reset()
                self._set_state(ReadyState.CONNECTED, f"status={response.status_code}")
                log.info("sse_connected", url=self._url, status=response.status_code)
                await self._emit(CONNECTED)
                self._heartbeat.start()

                async for chunk in response.aiter_bytes():
                    self._heartbeat.mark_alive()
                    await self._consume(chunk)
        except _HTTPX_FAILURES as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    def _check_response(self, response: httpx.Response) -> None:
        if response.status_code != 200:
            raise ProtocolError(
                f"response not OK. status code: {response.status_code}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if EVENT_STREAM_CONTENT_TYPE not in content_type:
            raise ProtocolError(
                f"response content type not {EVENT_STREAM_CONTENT_TYPE}: {content_type!r}",
                status_code=response.status_code,
                content_type=content_type,
            )

    async def _consume(self, chunk: bytes) -> None:
        for line in self._parser.feed(chunk):
            outcome = self._assembler.process(line)
            if outcome is None:
                continue
            if outcome.event_id is not None:
                self._last_event_id = outcome.event_id
            if outcome.event is not None:
                await self._dispatch(outcome.event)
            if self._closed:
                return
