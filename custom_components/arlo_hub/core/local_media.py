"""Hub-local recording access over mutual TLS (RATLS)."""

from __future__ import annotations

import asyncio
import logging
import os
import ssl
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, Final

from cryptography.exceptions import UnsupportedAlgorithm
from pydantic import SecretStr

from . import crypto
from .const import ENDPOINT_CERT_CREATE, ENDPOINT_RATLS_TOKEN, LOCAL_DOWNLOAD_PATH, LOCAL_LIST_PATH
from .errors import (
    HubTokenExpiredError,
    HubUnreachableError,
    LocalChannelError,
    MissingHubError,
    NonSuccessStatusError,
    StaleCredentialError,
    TokenExpiredError,
    TransportError,
)
from .models import Device, HubAddress, LocalMediaCredential, RecordingMetadata, Session
from .protocol import CommandDispatcher, format_date
from .transport import TransportAdapter

_LOGGER = logging.getLogger(__name__)

KEY_PRIVATE: Final = "private.pem"
KEY_PUBLIC: Final = "public.pem"
KEY_PEER_CERT: Final = "peer.crt"
KEY_DEVICE_CERT: Final = "device.crt"
KEY_ICA_CERT: Final = "ica.crt"
KEY_INSTALLATION_ID: Final = "installation.id"

CREDENTIAL_KEYS: Final = (
    KEY_PRIVATE,
    KEY_PUBLIC,
    KEY_PEER_CERT,
    KEY_DEVICE_CERT,
    KEY_ICA_CERT,
)
SECRET_KEYS: Final = frozenset({KEY_PRIVATE})


def _loads_private_key(private_pem: str) -> bool:
    try:
        crypto.load_private_key(private_pem)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True


class CredentialStore(ABC):
    """Key/value blob storage for keys and certificates."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Persist a value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value if present."""


class FileCredentialStore(CredentialStore):
    """Stores each blob as a file in one directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / key

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        path.write_text(value, encoding="utf-8")
        if key in SECRET_KEYS:
            os.chmod(path, 0o600)

    def _remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def get(self, key: str) -> str | None:
        return await self._run(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await self._run(self._write, key, value)

    async def delete(self, key: str) -> None:
        await self._run(self._remove, key)


class LocalMediaChannel:
    """Negotiates and uses the hub-local storage channel.

    The key pair and issued certificates persist across restarts. The hub
    token and address are short lived and must be re-opened once the
    validity window has passed.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        store: CredentialStore,
        dispatcher: CommandDispatcher,
        session_provider: Callable[[], Session],
        hub_provider: Callable[[], Device | None],
        *,
        installation_id: str | None = None,
        token_window: float = 300.0,
        user_agent: str,
        timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._store = store
        self._dispatcher = dispatcher
        self._session_provider = session_provider
        self._hub_provider = hub_provider
        self._installation_id = installation_id
        self._token_window = token_window
        self._user_agent = user_agent
        self._timeout = timeout
        self._clock = clock
        self._credential: LocalMediaCredential | None = None
        self._ssl_context: ssl.SSLContext | None = None

    @property
    def credential(self) -> LocalMediaCredential | None:
        return self._credential

    @property
    def hub_address(self) -> HubAddress | None:
        return self._credential.hub_address if self._credential else None

    def _hub(self) -> Device:
        hub = self._hub_provider()
        if hub is None:
            raise MissingHubError("No base station registered")
        return hub

    def _cloud_headers(self) -> dict[str, str]:
        session = self._session_provider()
        if not session.is_valid():
            raise TokenExpiredError("Session is not authenticated")
        return {**session.auth_headers(), "user-agent": self._user_agent}

    async def _get_installation_id(self) -> str:
        if self._installation_id is None:
            stored = await self._store.get(KEY_INSTALLATION_ID)
            if stored is None:
                stored = str(uuid.uuid4()).upper()
                await self._store.set(KEY_INSTALLATION_ID, stored)
            self._installation_id = stored.strip()
        return self._installation_id

    async def ensure_credential(self) -> LocalMediaCredential:
        """Load or create the key pair and issued certificates."""
        if self._credential is not None and self._credential.has_certificates():
            return self._credential

        private_pem = await self._store.get(KEY_PRIVATE)
        public_pem = await self._store.get(KEY_PUBLIC)
        if private_pem is not None and not _loads_private_key(private_pem):
            _LOGGER.warning("Stored local media key is unreadable, creating a new one")
            await self.reset_credential()
            private_pem = public_pem = None
        if private_pem is None or public_pem is None:
            _LOGGER.debug("Generating new local key pair")
            _, private_pem, public_pem = await asyncio.get_running_loop().run_in_executor(
                None, crypto.generate_key_pair
            )
            await self._store.set(KEY_PRIVATE, private_pem)
            await self._store.set(KEY_PUBLIC, public_pem)

        credential = LocalMediaCredential(
            private_key_pem=SecretStr(private_pem),
            public_key_pem=public_pem,
            peer_cert=await self._store.get(KEY_PEER_CERT),
            device_cert=await self._store.get(KEY_DEVICE_CERT),
            ica_cert=await self._store.get(KEY_ICA_CERT),
        )
        if not credential.has_certificates():
            credential = await self._request_certificates(credential)

        self._credential = credential
        self._ssl_context = None
        return credential

    async def _request_certificates(
        self, credential: LocalMediaCredential
    ) -> LocalMediaCredential:
        hub = self._hub()
        session = self._session_provider()
        body = {
            "uuid": await self._get_installation_id(),
            "publicKey": crypto.strip_public_key(credential.public_key_pem),
            "uniqueIds": [f"{session.user_id}_{hub.device_id}"],
        }

        _LOGGER.debug("Requesting local storage certificates")
        try:
            response = await self._transport.request(
                "POST",
                ENDPOINT_CERT_CREATE,
                headers=self._cloud_headers(),
                json=body,
                timeout=self._timeout,
            )
        except TransportError as err:
            _LOGGER.error("Certificate request failed: %s", err)
            raise LocalChannelError(f"Certificate request failed: {err}") from err

        data = response.body.get("data") if isinstance(response.body, dict) else None
        if not response.success or not isinstance(data, dict) or not data.get("certsData"):
            message = data.get("message") if isinstance(data, dict) else response.body
            _LOGGER.error("Certificate request was rejected: %s", message)
            raise LocalChannelError(f"Certificate request was rejected: {message}")

        certs = data["certsData"][0]
        credential = credential.model_copy(
            update={
                "peer_cert": crypto.format_certificate_pem(certs["peerCert"]),
                "device_cert": crypto.format_certificate_pem(certs["deviceCert"]),
                "ica_cert": crypto.format_certificate_pem(data["icaCert"]),
            }
        )
        _LOGGER.debug("Saving local storage certificates")
        await self._store.set(KEY_PEER_CERT, credential.peer_cert or "")
        await self._store.set(KEY_DEVICE_CERT, credential.device_cert or "")
        await self._store.set(KEY_ICA_CERT, credential.ica_cert or "")
        return credential

    async def open_local_session(self) -> LocalMediaCredential:
        """Fetch a hub token and ask the hub to open local storage.

        The hub answers on the push channel with its address, which must be
        passed to :meth:`set_hub_address` before listing or downloading.
        """
        credential = await self.ensure_credential()
        hub = self._hub()

        _LOGGER.debug("Request local storage activation")
        try:
            response = await self._transport.request(
                "GET",
                ENDPOINT_RATLS_TOKEN.format(hub_id=hub.device_id),
                headers=self._cloud_headers(),
                timeout=self._timeout,
            )
        except TransportError as err:
            _LOGGER.error("Hub token request failed: %s", err)
            raise LocalChannelError(f"Hub token request failed: {err}") from err

        data = response.body.get("data") if isinstance(response.body, dict) else None
        token = data.get("ratlsToken") if isinstance(data, dict) else None
        if not response.success or not token:
            raise LocalChannelError("No hub token issued")

        self._credential = credential.model_copy(
            update={
                "hub_token": SecretStr(token),
                "hub_address": None,
                "token_issued_at": self._clock(),
            }
        )
        await self._dispatcher.notify(
            hub, {"action": "open", "resource": "storage/ratls", "publishResponse": False}
        )
        _LOGGER.debug("Requested local storage activation")
        return self._credential

    def set_hub_address(self, ip: str, port: int) -> None:
        """Record the address reported by the hub on the push channel."""
        if self._credential is None:
            _LOGGER.debug("Ignoring hub address, no local session requested")
            return
        _LOGGER.debug("Local storage open at %s:%s", ip, port)
        self._credential = self._credential.model_copy(
            update={"hub_address": HubAddress(ip=ip, port=port)}
        )

    def is_open(self) -> bool:
        credential = self._credential
        if credential is None or credential.hub_token is None:
            return False
        if credential.hub_address is None or credential.token_issued_at is None:
            return False
        return self._clock() - credential.token_issued_at < self._token_window

    async def _context(self, credential: LocalMediaCredential) -> ssl.SSLContext:
        if self._ssl_context is None:
            assert credential.peer_cert is not None and credential.ica_cert is not None
            self._ssl_context = await asyncio.get_running_loop().run_in_executor(
                None,
                crypto.build_client_ssl_context,
                credential.private_key_pem.get_secret_value(),
                credential.peer_cert,
                credential.ica_cert,
            )
        return self._ssl_context

    async def _prepare(self) -> tuple[LocalMediaCredential, HubAddress, ssl.SSLContext]:
        if not self.is_open():
            raise HubTokenExpiredError("Local storage is not open, request it again")
        credential = self._credential
        assert credential is not None and credential.hub_address is not None
        try:
            context = await self._context(credential)
        except (ssl.SSLError, ValueError) as err:
            await self.reset_credential()
            raise StaleCredentialError(f"Stored certificates are unusable: {err}") from err
        return credential, credential.hub_address, context

    def _local_headers(self, credential: LocalMediaCredential) -> dict[str, str]:
        assert credential.hub_token is not None
        return {
            "authorization": f"Bearer {credential.hub_token.get_secret_value()}",
            "accept": "application/json",
            "user-agent": self._user_agent,
        }

    async def _fail(self, err: Exception) -> LocalChannelError:
        """Reset the stored material and map ``err`` for the caller."""
        _LOGGER.warning("Local storage request failed, removing certificates: %s", err)
        await self.reset_credential()
        if isinstance(err, NonSuccessStatusError):
            return StaleCredentialError(str(err))
        return HubUnreachableError(str(err))

    async def list_recordings(
        self, date_from: date | str | None = None, date_to: date | str | None = None
    ) -> list[RecordingMetadata]:
        """List recordings stored on the hub between two dates."""
        credential, address, context = await self._prepare()
        url = LOCAL_LIST_PATH.format(
            ip=address.ip,
            port=address.port,
            date_from=format_date(date_from or date.today()),
            date_to=format_date(date_to or date.today()),
        )

        _LOGGER.debug("Getting local storage recording data")
        try:
            response = await self._transport.request(
                "GET",
                url,
                headers=self._local_headers(credential),
                ssl_context=context,
                timeout=self._timeout,
            )
        except TransportError as err:
            raise await self._fail(err) from err

        if not response.success or not isinstance(response.body, dict):
            raise await self._fail(NonSuccessStatusError(response.status, response.body))

        recordings = [
            RecordingMetadata.model_validate(item) for item in response.body.get("data") or []
        ]
        _LOGGER.debug("Found %d recordings", len(recordings))
        return recordings

    async def download(self, path: str, destination: str) -> None:
        """Download one recording from the hub into ``destination``."""
        credential, address, context = await self._prepare()
        url = LOCAL_DOWNLOAD_PATH.format(ip=address.ip, port=address.port, path=path.lstrip("/"))
        headers = self._local_headers(credential)
        headers.pop("accept")

        _LOGGER.debug("Downloading %s", path)
        try:
            await self._transport.download(
                url, destination, headers=headers, ssl_context=context
            )
        except TransportError as err:
            raise await self._fail(err) from err

    async def reset_credential(self) -> None:
        """Remove persisted keys and certificates so the next open starts fresh."""
        hub = self._hub_provider()
        _LOGGER.debug(
            "Removing certificates for %s", hub.device_id if hub else "base station"
        )
        for key in CREDENTIAL_KEYS:
            await self._store.delete(key)
        self._credential = None
        self._ssl_context = None
