"""Interface for Arlo HTTP communication."""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from typing import Any

from pydantic import BaseModel


class TransportResponse(BaseModel):
    """Buffered response of a request."""

    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def success(self) -> bool:
        """True if the status is good and the body does not report a failure."""
        if not self.ok:
            return False
        if isinstance(self.body, dict) and self.body.get("success") is False:
            return False
        return True


class StreamResponse(ABC):
    """An open, indefinitely-lived streaming response."""

    @abstractmethod
    def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield raw body chunks until the server ends the stream.

        Raises:
            TransportError: If the connection fails mid-stream.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""


class TransportAdapter(ABC):
    """Abstract base class for HTTP transports.

    Implementations must keep cookies across calls so the push channel and
    notify calls share one server-side session.
    """

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """Send a request and buffer the body.

        Args:
            method: HTTP method.
            url: Absolute URL.
            headers: Extra request headers.
            params: Query string parameters.
            json: JSON-serializable body.
            ssl_context: Per-request TLS context, used for the hub channel.
            timeout: Total timeout in seconds.

        Returns:
            The status and decoded body (JSON when possible, else text).

        Raises:
            TransportTimeoutError: The request timed out.
            ConnectionRefusedTransportError: The connection failed.
            NonSuccessStatusError: The status code was not 2xx.
        """

    @abstractmethod
    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> StreamResponse:
        """Open a streaming response without a read timeout.

        Raises:
            TransportError: If the response could not be established.
        """

    @abstractmethod
    async def download(
        self,
        url: str,
        destination: str,
        *,
        headers: Mapping[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        """Stream a response body into a local file.

        Raises:
            TransportError: If the download fails.
        """

    @abstractmethod
    async def close(self) -> None:
        """Drop cookies and release connections."""
