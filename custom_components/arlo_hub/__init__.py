"""The Arlo Hub integration."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant

from .const import DOMAIN
from .coordinator import ArloHubDataUpdateCoordinator, config_from_entry_data
from .core.client import ArloClient
from .http_client import ArloHAHttpClient

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.BINARY_SENSOR,
    Platform.BUTTON,
    Platform.SENSOR,
    Platform.SWITCH,
]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Arlo Hub from a config entry."""
    config = config_from_entry_data(
        entry.data,
        entry.options,
        certificate_dir=hass.config.path(".storage", DOMAIN, entry.entry_id),
    )

    # Initialize core components
    transport = ArloHAHttpClient(hass)
    client = ArloClient(config, transport)

    coordinator = ArloHubDataUpdateCoordinator(hass, entry, client)

    # Log in and wait for discovery
    try:
        await coordinator.async_config_entry_first_refresh()
    except Exception:
        _LOGGER.debug("Initial refresh failed, stopping the Arlo engine")
        await coordinator.async_shutdown()
        raise

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = coordinator

    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    return True


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry so option changes reach the engine."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        coordinator: ArloHubDataUpdateCoordinator = hass.data[DOMAIN].pop(
            entry.entry_id
        )
        await coordinator.async_shutdown()

    return unload_ok
