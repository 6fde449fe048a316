"""Home Assistant HTTP client implementation for Arlo."""

from __future__ import annotations

import asyncio
import json as jsonlib
import logging
import ssl
from collections.abc import AsyncIterator, Mapping
from typing import Any

from aiohttp import (
    ClientConnectorError,
    ClientError,
    ClientResponse,
    ClientSession,
    ClientTimeout,
)
from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import async_create_clientsession

from .core.errors import (
    ConnectionRefusedTransportError,
    NonSuccessStatusError,
    TransportError,
    TransportTimeoutError,
)
from .core.transport import StreamResponse, TransportAdapter, TransportResponse

_LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _map_error(url: str, err: BaseException) -> TransportError:
    if isinstance(err, asyncio.TimeoutError):
        return TransportTimeoutError(f"Request to {url} timed out")
    if isinstance(err, ClientConnectorError):
        return ConnectionRefusedTransportError(f"Cannot connect to {url}: {err}")
    return ConnectionRefusedTransportError(f"Request to {url} failed: {err}")


async def _read_body(response: ClientResponse) -> Any:
    text = await response.text()
    if not text:
        return None
    try:
        return jsonlib.loads(text)
    except ValueError:
        return text


class ArloStreamResponse(StreamResponse):
    """Streaming body of the push channel."""

    def __init__(self, url: str, response: ClientResponse) -> None:
        self._url = url
        self._response = response

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.content.iter_any():
                yield chunk
        except (ClientError, asyncio.TimeoutError) as err:
            raise _map_error(self._url, err) from err

    async def close(self) -> None:
        self._response.close()


class ArloHAHttpClient(TransportAdapter):
    """Home Assistant concrete implementation of TransportAdapter.

    Uses a dedicated aiohttp session so the account cookies are not shared
    with other integrations.
    """

    def __init__(self, hass: HomeAssistant, session: ClientSession | None = None) -> None:
        """Initialize the HTTP client.

        Args:
            hass: The Home Assistant instance.
            session: Optional session to use instead of a dedicated one.
        """
        self._hass = hass
        self._owns_session = session is None
        self._session = session or async_create_clientsession(hass)

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
        _LOGGER.debug("%s %s", method, url)
        try:
            async with self._session.request(
                method,
                url,
                headers=dict(headers or {}),
                params=dict(params) if params else None,
                json=json,
                ssl=ssl_context if ssl_context is not None else True,
                timeout=ClientTimeout(total=timeout),
            ) as response:
                body = await _read_body(response)
                status = response.status
        except (ClientError, asyncio.TimeoutError) as err:
            _LOGGER.debug("%s %s failed: %s", method, url, err)
            raise _map_error(url, err) from err

        if not 200 <= status < 300:
            _LOGGER.debug("%s %s returned %s: %s", method, url, status, body)
            raise NonSuccessStatusError(status, body)
        return TransportResponse(status=status, body=body)

    async def open_stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> StreamResponse:
        try:
            response = await self._session.request(
                method,
                url,
                headers=dict(headers or {}),
                ssl=ssl_context if ssl_context is not None else True,
                timeout=ClientTimeout(total=None),
            )
        except (ClientError, asyncio.TimeoutError) as err:
            raise _map_error(url, err) from err

        if not 200 <= response.status < 300:
            body = await _read_body(response)
            response.close()
            raise NonSuccessStatusError(response.status, body)
        return ArloStreamResponse(url, response)

    async def download(
        self,
        url: str,
        destination: str,
        *,
        headers: Mapping[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        stream = await self.open_stream(
            "GET", url, headers=headers, ssl_context=ssl_context
        )
        handle = await self._hass.async_add_executor_job(open, destination, "wb")
        try:
            async for chunk in stream.iter_chunks():
                await self._hass.async_add_executor_job(handle.write, chunk)
        finally:
            await self._hass.async_add_executor_job(handle.close)
            await stream.close()
        _LOGGER.debug("Downloaded %s to %s", url, destination)

    async def close(self) -> None:
        self._session.cookie_jar.clear()
        if self._owns_session:
            await self._session.close()
