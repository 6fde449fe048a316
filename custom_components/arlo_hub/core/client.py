"""Engine facade wiring session, push channel, registry and commands."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from datetime import date
from typing import Any, Final

from .auth import AuthSession, build_auth_flow
from .config import ArloConfig, MfaMode
from .errors import (
    ArloError,
    AuthError,
    LocalChannelError,
    MissingHubError,
    NotConnectedError,
    TransportError,
)
from .event_stream import STATUS_CONNECTED, EventStreamClient
from .events import (
    Connected,
    DeviceSubscribed,
    DomainEvent,
    EngineFailed,
    EventBus,
    EventHandler,
    LocalStorageOpened,
    LoggedIn,
    LoggedOut,
    PropertiesRefreshed,
    RemoteLogoutReceived,
)
from .local_media import CredentialStore, FileCredentialStore, LocalMediaChannel
from .mailbox import ImapCodeSource, OneTimeCodeSource
from .models import Device, MediaUrls, RecordingMetadata, Session
from .protocol import CommandDispatcher
from .registry import DeviceRegistry
from .timers import TimerSet
from .transport import TransportAdapter

_LOGGER = logging.getLogger(__name__)

TIMER_KEEP_ALIVE: Final = "keep_alive"
TIMER_REFRESH: Final = "refresh"
TIMER_TOKEN_EXPIRY: Final = "token_expiry"
TIMER_RELOGIN: Final = "relogin"


class ArloClient:
    """Keeps one account logged in and its devices synchronized.

    Callers observe the engine through :meth:`subscribe`; state changes are
    published as :class:`DomainEvent` values after the registry applied them.
    """

    def __init__(
        self,
        config: ArloConfig,
        transport: TransportAdapter,
        *,
        code_source: OneTimeCodeSource | None = None,
        credential_store: CredentialStore | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Account and tuning options.
            transport: HTTP transport shared by every component.
            code_source: One-time code source for e-mail MFA. Defaults to IMAP.
            credential_store: Storage for local media keys. Defaults to
                ``config.certificate_dir`` when set.
        """
        self.config = config
        self.transport = transport

        if code_source is None and config.mfa_mode == MfaMode.EMAIL:
            code_source = ImapCodeSource()
        flow = build_auth_flow(transport, config, code_source)
        self.auth = AuthSession(
            transport, flow, user_agent=config.user_agent, timeout=config.request_timeout
        )

        self.registry = DeviceRegistry()
        self.stream = EventStreamClient(
            transport, policy=config.reconnect, user_agent=config.user_agent
        )
        self.dispatcher = CommandDispatcher(
            transport,
            self.registry,
            lambda: self.auth.session,
            lambda: self.stream.connected,
            user_agent=config.user_agent,
            timeout=config.request_timeout,
        )

        if credential_store is None and config.certificate_dir:
            credential_store = FileCredentialStore(config.certificate_dir)
        self.local_media: LocalMediaChannel | None = None
        if credential_store is not None:
            self.local_media = LocalMediaChannel(
                transport,
                credential_store,
                self.dispatcher,
                lambda: self.auth.session,
                lambda: self.registry.hub,
                installation_id=config.installation_id,
                token_window=config.local_token_window,
                user_agent=config.user_agent,
                timeout=config.request_timeout,
            )

        self.timers = TimerSet()
        self.bus = EventBus()
        self.fatal_error: str | None = None

        self._discovered = False
        self._polled: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

        self.stream.on_event(self._handle_envelope)
        self.stream.on_reconnect(self._resubscribe)
        self.stream.on_failure(self._on_stream_failure)

    # -------------------------
    # Observation
    # -------------------------

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register a domain event handler and return its remover."""
        return self.bus.subscribe(handler)

    @property
    def session(self) -> Session:
        return self.auth.session

    @property
    def connected(self) -> bool:
        return self.stream.connected

    @property
    def hub(self) -> Device | None:
        return self.registry.hub

    @property
    def cameras(self) -> list[Device]:
        return self.registry.cameras

    def get_device(self, device_id: str) -> Device | None:
        return self.registry.get(device_id)

    def is_armed(self) -> bool | None:
        return self.registry.hub.armed if self.registry.hub else None

    def is_privacy_enabled(self, device_id: str) -> bool | None:
        return self.registry.require(device_id).privacy_active

    def get_snapshot_urls(self, device_id: str) -> MediaUrls:
        return self.dispatcher.get_snapshot_urls(device_id)

    # -------------------------
    # Lifecycle
    # -------------------------

    async def login(self) -> Session:
        """Log in and open the push channel.

        Discovery starts once the server confirms the channel.

        Raises:
            AuthError: If the login handshake failed.
            TransportError: If the push channel could not be opened.
        """
        session = await self.auth.login()
        self.fatal_error = None
        self._discovered = False
        self._polled.clear()

        identity = session.identity
        self.bus.publish(LoggedIn(serial_number=identity.serial_number if identity else None))

        if session.token_expiry is not None:
            delay = max(session.token_expiry - time.time(), 0.0)
            self.timers.call_later(TIMER_TOKEN_EXPIRY, delay, self._on_token_expired)

        await self.stream.subscribe(session)
        return session

    async def logout(self) -> None:
        """Tear down and end the session on the server."""
        await self._teardown()
        self.bus.publish(LoggedOut(remote=False))
        await self.auth.logout()

    async def close(self) -> None:
        """Stop every background activity and log out if still logged in."""
        for task in list(self._tasks):
            task.cancel()
        await self._teardown()
        if self.auth.is_valid():
            try:
                await self.auth.logout()
            except AuthError as err:
                _LOGGER.warning("Logout during shutdown failed: %s", err)

    async def _teardown(self) -> None:
        self.timers.cancel_all()
        await self.stream.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fail(self, reason: str) -> None:
        _LOGGER.error("Arlo engine stopped: %s", reason)
        self.fatal_error = reason
        await self._teardown()
        self.bus.publish(EngineFailed(reason=reason))

    def _on_stream_failure(self) -> None:
        self._spawn(self._fail("Event stream could not be re-established"))

    async def _on_token_expired(self) -> None:
        _LOGGER.info("Session token expired, logging in again")
        self.auth.expire()
        await self._teardown()
        self.bus.publish(LoggedOut(remote=False))
        self.timers.call_later(TIMER_RELOGIN, 0, self._relogin)

    async def _on_remote_logout(self) -> None:
        _LOGGER.warning(
            "Logged out by the server, logging in again in %ss", self.config.relogin_delay
        )
        self.auth.expire()
        await self._teardown()
        self.bus.publish(LoggedOut(remote=True))
        self.timers.call_later(TIMER_RELOGIN, self.config.relogin_delay, self._relogin)

    async def _relogin(self) -> None:
        try:
            await self.login()
        except (AuthError, TransportError) as err:
            _LOGGER.error(
                "Re-login failed, retrying in %ss: %s", self.config.relogin_delay, err
            )
            self.timers.call_later(TIMER_RELOGIN, self.config.relogin_delay, self._relogin)

    # -------------------------
    # Push channel
    # -------------------------

    def _handle_envelope(self, envelope: dict[str, Any]) -> None:
        if envelope.get("status") == STATUS_CONNECTED:
            self.bus.publish(Connected())
            if not self._discovered:
                self._discovered = True
                self._spawn(self._discover())
            return

        events = self.registry.apply_event(envelope)
        for event in events:
            self._react(event)
        self.bus.publish_all(events)

    def _react(self, event: DomainEvent) -> None:
        if isinstance(event, DeviceSubscribed):
            if event.device_id not in self._polled:
                device = self.registry.get(event.device_id)
                if device is not None:
                    self._polled.add(event.device_id)
                    self._spawn(self._poll_device(device))
        elif isinstance(event, LocalStorageOpened):
            if self.local_media is not None:
                self.local_media.set_hub_address(event.ip, event.port)
        elif isinstance(event, RemoteLogoutReceived):
            self._spawn(self._on_remote_logout())

    async def _poll_device(self, device: Device) -> None:
        try:
            await self.dispatcher.request_device_refresh(device)
        except ArloError as err:
            _LOGGER.warning("[%s] Property request failed: %s", device.device_id, err)

    def _tracked_devices(self) -> list[Device]:
        hub = self.registry.hub
        return ([hub] if hub else []) + self.registry.q_cameras()

    async def _discover(self) -> None:
        try:
            raw = await self.dispatcher.get_devices()
            events = self.registry.replace_all(raw)
        except MissingHubError as err:
            await self._fail(str(err))
            return
        except ArloError as err:
            _LOGGER.error("Device discovery failed: %s", err)
            return
        self.bus.publish_all(events)

        await self._subscribe_tracked()
        self.timers.call_repeating(
            TIMER_KEEP_ALIVE, self.config.keep_alive_interval, self._subscribe_tracked
        )
        await self.refresh()
        if self.config.refresh_interval:
            self.timers.call_repeating(
                TIMER_REFRESH, self.config.refresh_interval, self.refresh
            )

    async def _subscribe_tracked(self) -> None:
        for device in self._tracked_devices():
            try:
                await self.dispatcher.subscribe_device(device)
            except NotConnectedError:
                _LOGGER.debug("[%s] Not connected, skipping subscription", device.device_id)
            except ArloError as err:
                _LOGGER.warning("[%s] Subscription failed: %s", device.device_id, err)

    async def _resubscribe(self) -> None:
        _LOGGER.debug("Event stream reconnected, subscribing devices again")
        self._polled.clear()
        await self._subscribe_tracked()
        self.timers.call_repeating(
            TIMER_KEEP_ALIVE, self.config.keep_alive_interval, self._subscribe_tracked
        )

    async def refresh(self) -> None:
        """Request fresh properties and the armed status."""
        for device in self._tracked_devices():
            await self._poll_device(device)
        try:
            envelope = await self.dispatcher.fetch_armed_status()
        except ArloError as err:
            _LOGGER.warning("Unable to read armed status: %s", err)
        else:
            self.bus.publish_all(self.registry.apply_event(envelope))
        self.bus.publish(PropertiesRefreshed())

    # -------------------------
    # Commands
    # -------------------------

    async def arm(self, device_id: str | None = None) -> list[str]:
        return await self.dispatcher.arm(device_id)

    async def disarm(self, device_id: str | None = None) -> list[str]:
        return await self.dispatcher.disarm(device_id)

    async def set_privacy(self, device_id: str, active: bool) -> list[str]:
        return await self.dispatcher.set_privacy(device_id, active)

    async def siren_on(self, device_id: str) -> list[str]:
        return await self.dispatcher.siren_on(device_id)

    async def siren_off(self, device_id: str) -> list[str]:
        return await self.dispatcher.siren_off(device_id)

    async def start_stream(self, device_id: str) -> str:
        return await self.dispatcher.start_stream(device_id)

    async def stop_stream(self, device_id: str) -> None:
        await self.dispatcher.stop_stream(device_id)

    async def take_snapshot(self, device_id: str) -> None:
        await self.dispatcher.take_snapshot(device_id)

    async def get_media_library(
        self, date_from: date | str, date_to: date | str | None = None
    ) -> list[dict[str, Any]]:
        return await self.dispatcher.get_media_library(date_from, date_to)

    # -------------------------
    # Local media
    # -------------------------

    def _local(self) -> LocalMediaChannel:
        if self.local_media is None:
            raise LocalChannelError("No credential store configured for local media")
        return self.local_media

    async def open_local_media(self) -> None:
        """Ask the hub to open local storage; the address arrives as an event."""
        await self._local().open_local_session()

    async def list_recordings(
        self, date_from: date | str | None = None, date_to: date | str | None = None
    ) -> list[RecordingMetadata]:
        return await self._local().list_recordings(date_from, date_to)

    async def download_recording(self, path: str, destination: str) -> None:
        await self._local().download(path, destination)
