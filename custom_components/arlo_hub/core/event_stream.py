"""Push channel client for Arlo device events."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Final

from .config import ReconnectPolicy
from .const import DEFAULT_USER_AGENT, ENDPOINT_SUBSCRIBE
from .errors import TransportError, UnparsableEnvelopeError
from .models import Session
from .transport import StreamResponse, TransportAdapter

_LOGGER = logging.getLogger(__name__)

STATUS_CONNECTED: Final = "connected"
MAX_BUFFER_SIZE: Final = 1024 * 1024

_FRAME_TERMINATOR: Final = "\n\n"
_MISENCODED_QUOTE: Final = "“"

Envelope = dict[str, Any]
EnvelopeHandler = Callable[[Envelope], None]
ReconnectHandler = Callable[[], Awaitable[None] | None]


def decode_frame(frame: str) -> dict[str, Any]:
    """Decode one push frame into a message object.

    A frame is a run of ``field: value`` lines, usually ``event: message``
    followed by ``data: {...}``. Multiple data lines are joined with newlines.

    Args:
        frame: The frame text without its blank-line terminator.

    Returns:
        ``{"event": <name>, "data": <decoded JSON>}``.

    Raises:
        UnparsableEnvelopeError: If the frame has no data or the data is not
            a JSON object.
    """
    event = "message"
    data: list[str] = []
    for line in frame.split("\n"):
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value.strip()
        elif field == "data":
            data.append(value)

    if not data:
        raise UnparsableEnvelopeError(f"Push frame without data: {frame!r}")
    try:
        payload = json.loads("\n".join(data).replace(_MISENCODED_QUOTE, '"'))
    except ValueError as err:
        raise UnparsableEnvelopeError(f"Push frame is not JSON: {frame!r}") from err
    if not isinstance(payload, dict):
        raise UnparsableEnvelopeError(f"Push frame data is not an object: {frame!r}")
    return {"event": event, "data": payload}


def parse_event_message(text: str) -> dict[str, Any] | None:
    """Return the message in ``text``, or None if it is not complete."""
    try:
        return decode_frame(text.strip())
    except UnparsableEnvelopeError:
        return None


class StreamBuffer:
    """Splits push data into frames and keeps the unterminated tail.

    Every complete frame is decoded in arrival order. The tail is also
    emitted, and the buffer emptied, once it already holds a complete message.
    """

    def __init__(self, max_size: int | None = None) -> None:
        self._buffer = ""
        self._max_size = max_size

    @property
    def pending(self) -> str:
        return self._buffer

    def reset(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """Append a chunk and return the messages it completed."""
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")
        *frames, tail = self._buffer.split(_FRAME_TERMINATOR)

        messages = []
        for frame in frames:
            if not frame.strip():
                continue
            try:
                messages.append(decode_frame(frame.strip("\n")))
            except UnparsableEnvelopeError as err:
                _LOGGER.warning("Dropping push frame: %s", err)

        self._buffer = tail
        if not tail.strip():
            self._buffer = ""
        elif (message := parse_event_message(tail)) is not None:
            messages.append(message)
            self._buffer = ""
        elif self._max_size is not None and len(tail) > self._max_size:
            _LOGGER.warning("Discarding %d bytes of unparsable push data", len(tail))
            self._buffer = ""
        return messages


class EventStreamClient:
    """Maintains the single long-lived push channel.

    Envelopes are delivered to handlers registered with :meth:`on_event`.
    When the stream drops while the session is still valid, the channel is
    re-opened with capped exponential backoff and the reconnect handlers run
    once the server confirms the new connection.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        *,
        policy: ReconnectPolicy | None = None,
        url: str = ENDPOINT_SUBSCRIBE,
        user_agent: str = DEFAULT_USER_AGENT,
        max_buffer_size: int | None = MAX_BUFFER_SIZE,
    ) -> None:
        self._transport = transport
        self._policy = policy or ReconnectPolicy()
        self._url = url
        self._user_agent = user_agent
        self._max_buffer_size = max_buffer_size

        self._session: Session | None = None
        self._task: asyncio.Task[None] | None = None
        self._stream: StreamResponse | None = None
        self._cancelled = True
        self._connected = False
        self._reconnecting = False
        self._connected_once = False

        self._handlers: list[EnvelopeHandler] = []
        self._reconnect_handlers: list[ReconnectHandler] = []
        self._failure_handlers: list[Callable[[], None]] = []

    @property
    def connected(self) -> bool:
        """True between the server's connected status and the next drop."""
        return self._connected

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_event(self, handler: EnvelopeHandler) -> Callable[[], None]:
        """Register an envelope handler and return its remover."""
        self._handlers.append(handler)
        return lambda: self._remove(self._handlers, handler)

    def on_reconnect(self, handler: ReconnectHandler) -> Callable[[], None]:
        """Register a handler run after each successful reconnection."""
        self._reconnect_handlers.append(handler)
        return lambda: self._remove(self._reconnect_handlers, handler)

    def on_failure(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Register a handler run when reconnection gives up."""
        self._failure_handlers.append(handler)
        return lambda: self._remove(self._failure_handlers, handler)

    async def subscribe(self, session: Session) -> None:
        """Open the push channel and deliver envelopes in the background.

        Returns once the streaming response is established.

        Raises:
            TransportError: If the stream could not be opened.
        """
        if self.running:
            await self.cancel()

        self._session = session
        self._cancelled = False
        self._reconnecting = False
        _LOGGER.debug("Subscribing to event notifications")
        stream = await self._open()
        self._task = asyncio.create_task(self._run(stream))

    async def cancel(self) -> None:
        """Stop delivery and reconnection immediately."""
        self._cancelled = True
        self._connected = False
        task, self._task = self._task, None

        if self._stream is not None:
            stream, self._stream = self._stream, None
            await stream.close()

        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _open(self) -> StreamResponse:
        assert self._session is not None
        headers = {
            **self._session.auth_headers(),
            "accept": "text/event-stream",
            "user-agent": self._user_agent,
        }
        self._stream = await self._transport.open_stream("GET", self._url, headers=headers)
        return self._stream

    def _should_reconnect(self) -> bool:
        return (
            not self._cancelled
            and self._session is not None
            and self._session.is_valid()
        )

    async def _run(self, stream: StreamResponse) -> None:
        attempt = 0
        while True:
            try:
                await self._consume(stream)
                _LOGGER.debug("End of current event notification stream")
            except TransportError as err:
                _LOGGER.debug("Event notification stream failed: %s", err)
            finally:
                self._connected = False
                if self._stream is stream:
                    self._stream = None
                await stream.close()

            if self._connected_once:
                attempt = 0
            if not self._should_reconnect():
                return

            reopened: StreamResponse | None = None
            while reopened is None:
                attempt += 1
                if (
                    self._policy.max_attempts is not None
                    and attempt > self._policy.max_attempts
                ):
                    _LOGGER.error(
                        "Giving up on event stream after %d attempts",
                        self._policy.max_attempts,
                    )
                    self._notify_failure()
                    return
                delay = self._policy.delay_for(attempt)
                if delay:
                    _LOGGER.debug("Reconnecting event stream in %.1fs", delay)
                    await asyncio.sleep(delay)
                if not self._should_reconnect():
                    return
                try:
                    reopened = await self._open()
                except TransportError as err:
                    _LOGGER.warning("Event stream reconnect failed: %s", err)

            self._reconnecting = True
            stream = reopened

    async def _consume(self, stream: StreamResponse) -> None:
        buffer = StreamBuffer(self._max_buffer_size)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._connected_once = False

        async for chunk in stream.iter_chunks():
            for message in buffer.feed(decoder.decode(chunk)):
                if self._cancelled:
                    return
                await self._deliver(message["data"])

    async def _deliver(self, envelope: Envelope) -> None:
        if envelope.get("status") == STATUS_CONNECTED:
            _LOGGER.debug("Connected to event notification stream")
            self._connected = True
            self._connected_once = True

        self._dispatch(envelope)

        if self._connected_once and self._reconnecting:
            self._reconnecting = False
            await self._run_reconnect_handlers()

    def _dispatch(self, envelope: Envelope) -> None:
        for handler in list(self._handlers):
            if self._cancelled:
                return
            try:
                handler(envelope)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error handling event envelope: %s", envelope)

    async def _run_reconnect_handlers(self) -> None:
        for handler in list(self._reconnect_handlers):
            try:
                result = handler()
                if result is not None:
                    await result
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error in reconnect handler")

    def _notify_failure(self) -> None:
        for handler in list(self._failure_handlers):
            try:
                handler()
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error in stream failure handler")

    @staticmethod
    def _remove(handlers: list[Any], handler: Any) -> None:
        if handler in handlers:
            handlers.remove(handler)
