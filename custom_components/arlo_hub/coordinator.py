"""DataUpdateCoordinator for Arlo Hub integration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import (
    CONF_APPLICATION_ID,
    CONF_IMAP_HOST,
    CONF_IMAP_PASSWORD,
    CONF_IMAP_PORT,
    CONF_IMAP_USER,
    CONF_INSTALLATION_ID,
    CONF_MFA_MODE,
    CONF_MOBILE_PAYLOAD,
    CONF_MOBILE_TOKEN,
    CONF_REFRESH_INTERVAL,
    DEFAULT_IMAP_PORT,
)
from .core.client import ArloClient
from .core.config import ArloConfig, MailboxConnection, MfaMode
from .core.errors import ArloError
from .core.events import DomainEvent, EngineFailed, GotAllDevices, LoggedOut

_LOGGER = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 60


def config_from_entry_data(
    data: Mapping[str, Any],
    options: Mapping[str, Any] | None = None,
    certificate_dir: str | None = None,
) -> ArloConfig:
    """Build the engine configuration from config entry data."""
    options = options or {}
    mailbox = None
    if data.get(CONF_IMAP_HOST):
        mailbox = MailboxConnection(
            host=data[CONF_IMAP_HOST],
            port=data.get(CONF_IMAP_PORT, DEFAULT_IMAP_PORT),
            user=data[CONF_IMAP_USER],
            password=data[CONF_IMAP_PASSWORD],
        )

    return ArloConfig(
        email=data[CONF_EMAIL],
        password=data[CONF_PASSWORD],
        mfa_mode=MfaMode(data.get(CONF_MFA_MODE, MfaMode.EMAIL.value)),
        mailbox=mailbox,
        mobile_token=data.get(CONF_MOBILE_TOKEN),
        mobile_payload=data.get(CONF_MOBILE_PAYLOAD),
        application_id=data.get(CONF_APPLICATION_ID),
        refresh_interval=options.get(CONF_REFRESH_INTERVAL) or None,
        installation_id=data.get(CONF_INSTALLATION_ID),
        certificate_dir=certificate_dir,
    )


class ArloHubDataUpdateCoordinator(DataUpdateCoordinator[dict[str, Any]]):
    """Push driven coordinator for one Arlo account.

    The engine publishes every state change; the coordinator turns them into
    snapshots for the entities. Polling only happens on explicit refresh.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        client: ArloClient,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name="Arlo Hub",
            update_interval=None,
        )
        self.entry = entry
        self.client = client
        self._discovered = asyncio.Event()
        self._unsubscribe = client.subscribe(self._handle_event)
        self.data = self._snapshot()

    def _snapshot(self) -> dict[str, Any]:
        hub = self.client.hub
        return {
            "connected": self.client.connected,
            "armed": hub.armed if hub else None,
            "mode": hub.active_mode if hub else None,
            "devices": {d.device_id: d for d in self.client.registry.devices},
        }

    async def _async_update_data(self) -> dict[str, Any]:
        """Log in on first use, otherwise request fresh properties."""
        if self.client.fatal_error:
            raise UpdateFailed(self.client.fatal_error)

        if not self.client.session.is_valid():
            self._discovered.clear()
            try:
                await self.client.login()
            except ArloError as err:
                raise UpdateFailed(f"Failed to log in to Arlo: {err}") from err

            try:
                async with asyncio.timeout(DISCOVERY_TIMEOUT):
                    await self._discovered.wait()
            except TimeoutError as err:
                raise UpdateFailed("Timed out waiting for Arlo devices") from err
            if self.client.fatal_error:
                raise UpdateFailed(self.client.fatal_error)
        elif self.client.connected:
            await self.client.refresh()

        return self._snapshot()

    @callback
    def _handle_event(self, event: DomainEvent) -> None:
        """Handle a domain event from the engine."""
        if isinstance(event, (GotAllDevices, EngineFailed)):
            self._discovered.set()

        if isinstance(event, EngineFailed):
            self.async_set_update_error(UpdateFailed(event.reason))
            return
        if isinstance(event, LoggedOut):
            _LOGGER.info("Arlo session ended (remote=%s)", event.remote)

        self.async_set_updated_data(self._snapshot())

    async def async_shutdown(self) -> None:
        """Stop the engine."""
        self._unsubscribe()
        await self.client.close()
        await self.client.transport.close()
        await super().async_shutdown()
