"""In-memory doubles for the transport, mailbox and credential store."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

from pydantic import SecretStr

from custom_components.arlo_hub.core.config import MailboxConnection
from custom_components.arlo_hub.core.errors import ConnectionRefusedTransportError
from custom_components.arlo_hub.core.local_media import CredentialStore
from custom_components.arlo_hub.core.mailbox import OneTimeCodeSource
from custom_components.arlo_hub.core.models import Identity, Session, SessionState
from custom_components.arlo_hub.core.transport import (
    StreamResponse,
    TransportAdapter,
    TransportResponse,
)

Reply = TransportResponse | Exception | Callable[..., TransportResponse]


def ok(body: Any = None, status: int = 200) -> TransportResponse:
    return TransportResponse(status=status, body=body)


def valid_session(user_id: str = "USER-1") -> Session:
    return Session(
        state=SessionState.AUTHENTICATED,
        bearer_token=SecretStr("bearer"),
        identity=Identity(user_id=user_id, serial_number="SERIAL"),
    )


async def settle(rounds: int = 50) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeStream(StreamResponse):
    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()
        self.closed = False

    def push(self, text: str) -> None:
        self._queue.put_nowait(text.encode("utf-8"))

    def push_envelope(self, envelope: str) -> None:
        self.push(f"event: message\ndata: {envelope}\n\n")

    def end(self) -> None:
        self._queue.put_nowait(None)

    def fail(self, err: Exception) -> None:
        self._queue.put_nowait(err)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)


class FakeTransport(TransportAdapter):
    """Answers requests from a table keyed by ``(method, url)``.

    Unknown requests get ``{"success": true}``.
    """

    def __init__(self) -> None:
        self.replies: dict[tuple[str, str], list[Reply]] = {}
        self.calls: list[dict[str, Any]] = []
        self.streams: list[FakeStream] = []
        self.opened: list[FakeStream] = []
        self.downloads: list[tuple[str, str]] = []
        self.download_error: Exception | None = None
        self.closed = False

    def reply(self, method: str, url: str, *replies: Reply) -> None:
        self.replies.setdefault((method, url), []).extend(replies)

    def calls_to(self, url: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["url"] == url]

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers=None,
        params=None,
        json=None,
        ssl_context=None,
        timeout=None,
    ) -> TransportResponse:
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": dict(headers or {}),
                "params": dict(params or {}),
                "json": json,
                "ssl_context": ssl_context,
            }
        )
        queue = self.replies.get((method, url))
        if not queue:
            return ok({"success": True})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(method=method, url=url, json=json, params=params)
        return reply

    async def open_stream(self, method, url, *, headers=None, ssl_context=None):
        if not self.streams:
            raise ConnectionRefusedTransportError("no stream available")
        stream = self.streams.pop(0)
        self.opened.append(stream)
        return stream

    async def download(self, url, destination, *, headers=None, ssl_context=None):
        if self.download_error is not None:
            raise self.download_error
        self.downloads.append((url, destination))

    async def close(self) -> None:
        self.closed = True


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)


class FakeCodeSource(OneTimeCodeSource):
    def __init__(self, codes: list[str | None]) -> None:
        self.codes = list(codes)
        self.prepared = 0
        self.fetched = 0

    async def prepare(self, connection: MailboxConnection) -> None:
        self.prepared += 1

    async def fetch_code(self, connection: MailboxConnection, subject_filter: str) -> str | None:
        self.fetched += 1
        return self.codes.pop(0) if self.codes else None
